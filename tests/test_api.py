from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
from fastapi.testclient import TestClient

from sweeps.api.deps import get_fetcher
from sweeps.core.config import Settings, get_settings
from sweeps.extractors.attributes import ATTRIBUTE_KEYS
from sweeps.main import app
from sweeps.services.candidates import attribute_candidate
from sweeps.services.entities import CanonicalEntity
from sweeps.services.fetcher import DiagnosticFetcher
from sweeps.services.repository import get_repository
from sweeps.services.store import InMemoryStore

ADMIN_HEADERS = {"X-Admin-Secret": "s3cret"}
PADDING = "<style>/*" + "." * 2200 + "*/</style>"
CUP = f"""
<html><head>{PADDING}</head><body>
<h1>Ocean State Cup</h1>
<p>June 12-14, 2026</p>
<p>Entry fee: $650 per team. 4 game guarantee.</p>
<p>Divisions U9 U10 U11 U12</p>
<ul><li><strong>Riverside Park</strong> 100 River Rd, Warwick, RI 02886</li></ul>
</body></html>
"""


def _settings(admin_secret: str | None = "s3cret") -> Settings:
    return Settings(
        admin_secret=admin_secret,
        politeness_delay_seconds=0.0,
        contact_jitter_min_seconds=0.0,
        contact_jitter_max_seconds=0.0,
        otel_enabled=False,
    )


async def _fake_fetcher() -> AsyncIterator[DiagnosticFetcher]:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oceanstatecup.org" and request.url.path == "/":
            return httpx.Response(200, headers={"content-type": "text/html"}, text=CUP)
        return httpx.Response(404, headers={"content-type": "text/html"}, text="missing")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=False) as client:
        yield DiagnosticFetcher(client, user_agent="test-agent/1.0")


def _client_for(store: InMemoryStore, settings: Settings | None = None) -> TestClient:
    app.dependency_overrides[get_settings] = lambda: settings if settings is not None else _settings()
    app.dependency_overrides[get_repository] = lambda: store
    app.dependency_overrides[get_fetcher] = _fake_fetcher
    return TestClient(app)


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_entity(
        CanonicalEntity(
            id="t-1",
            entity_type="tournament",
            name="Ocean State Cup",
            official_website_url="https://oceanstatecup.org/",
        )
    )
    return store


@pytest.fixture
def api_client(store: InMemoryStore) -> TestClient:
    with _client_for(store) as client:
        yield client
    app.dependency_overrides.clear()


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/").json() == {"status": "ok", "service": "tournament-sweeps"}
    assert api_client.get("/healthz").json() == {"status": "ok"}


def test_admin_routes_require_secret(api_client: TestClient) -> None:
    assert api_client.post("/sweeps").status_code == 401
    assert api_client.post("/sweeps", headers={"X-Admin-Secret": "wrong"}).status_code == 401


def test_admin_routes_unavailable_without_configured_secret(store: InMemoryStore) -> None:
    with _client_for(store, _settings(admin_secret=None)) as client:
        response = client.post("/sweeps", headers=ADMIN_HEADERS)
    app.dependency_overrides.clear()
    assert response.status_code == 503


def test_scope_header_narrows_access(api_client: TestClient) -> None:
    response = api_client.post("/sweeps", headers={**ADMIN_HEADERS, "X-Admin-Scopes": "review:read"})
    assert response.status_code == 403


def test_run_sweep_returns_summary(api_client: TestClient, store: InMemoryStore) -> None:
    response = api_client.post("/sweeps", params={"include_contacts": "false"}, headers=ADMIN_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["attempted"] == 1
    assert body["inserted"] == 6
    assert body["inserted_by_kind"] == {"attribute": 4, "venue": 1, "date": 1, "contact": 0}
    assert body["summary"][0]["url"] == "https://oceanstatecup.org/"
    assert len(store.candidates) == 6


def test_run_sweep_rejects_unknown_entity_type(api_client: TestClient) -> None:
    response = api_client.post("/sweeps", params={"entity_type": "referee"}, headers=ADMIN_HEADERS)
    assert response.status_code == 422


def test_run_sweep_abort_returns_partial_counts() -> None:
    outdated = InMemoryStore(attribute_keys=frozenset(ATTRIBUTE_KEYS))
    outdated.add_entity(
        CanonicalEntity(id="t-1", entity_type="tournament", official_website_url="https://oceanstatecup.org/")
    )

    with _client_for(outdated) as client:
        response = client.post("/sweeps", params={"include_contacts": "false"}, headers=ADMIN_HEADERS)
    app.dependency_overrides.clear()

    assert response.status_code == 500
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "attribute_constraint_outdated"
    assert body["attempted"] == 1


def test_review_list_and_apply(api_client: TestClient, store: InMemoryStore) -> None:
    fee = attribute_candidate(
        "tournament",
        "t-1",
        key="team_fee",
        value="$650",
        source_url="https://oceanstatecup.org/",
        confidence=0.8,
    )
    fee.id = "c-1"
    store.candidates["c-1"] = fee

    listed = api_client.get("/review/candidates", params={"entity_id": "t-1"}, headers=ADMIN_HEADERS)
    assert listed.status_code == 200
    assert [row["id"] for row in listed.json()] == ["c-1"]

    applied = api_client.post(
        "/review/apply",
        json={"entity_type": "tournament", "entity_id": "t-1", "candidate_ids": ["c-1"]},
        headers=ADMIN_HEADERS,
    )
    assert applied.status_code == 200
    assert applied.json()["updated_fields"] == ["team_fee"]
    assert store.entities[("tournament", "t-1")].fields["team_fee"] == "$650"

    missing = api_client.post(
        "/review/apply",
        json={"entity_type": "tournament", "entity_id": "t-1", "candidate_ids": ["nope"]},
        headers=ADMIN_HEADERS,
    )
    assert missing.status_code == 404


def test_review_reject_then_apply_conflicts(api_client: TestClient, store: InMemoryStore) -> None:
    fee = attribute_candidate(
        "tournament",
        "t-1",
        key="team_fee",
        value="$650",
        source_url="https://oceanstatecup.org/",
        confidence=0.8,
    )
    fee.id = "c-2"
    store.candidates["c-2"] = fee

    rejected = api_client.post(
        "/review/reject",
        json={"candidate_ids": ["c-2"], "reason": "old season"},
        headers=ADMIN_HEADERS,
    )
    assert rejected.status_code == 200
    assert rejected.json() == {"ok": True, "rejected": 1}

    conflict = api_client.post(
        "/review/apply",
        json={"entity_type": "tournament", "entity_id": "t-1", "candidate_ids": ["c-2"]},
        headers=ADMIN_HEADERS,
    )
    assert conflict.status_code == 409


def test_review_block_marks_source(api_client: TestClient, store: InMemoryStore) -> None:
    fee = attribute_candidate(
        "tournament",
        "t-1",
        key="team_fee",
        value="$650",
        source_url="https://spam.example.net/fees",
        confidence=0.8,
    )
    fee.id = "c-3"
    store.candidates["c-3"] = fee

    response = api_client.post("/review/block", json={"candidate_ids": ["c-3"]}, headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["blocked_sources"] == ["https://spam.example.net/fees"]
    assert [entry.review_status for entry in store.sources.values()] == ["blocked"]


def test_source_registry_routes(api_client: TestClient) -> None:
    created = api_client.post(
        "/sources",
        json={"url": "WWW.OceanStateCup.org/schedule/?utm_source=x", "source_type": "tournament", "state": "RI"},
        headers=ADMIN_HEADERS,
    )
    assert created.status_code == 200
    source = created.json()
    assert source["canonical_url"] == "https://oceanstatecup.org/schedule"
    assert source["host"] == "oceanstatecup.org"
    assert source["review_status"] == "untested"

    fetched = api_client.get(f"/sources/{source['id']}", headers=ADMIN_HEADERS)
    assert fetched.json()["id"] == source["id"]

    ignored = api_client.post(f"/sources/{source['id']}/ignore", headers=ADMIN_HEADERS)
    assert ignored.status_code == 200
    assert ignored.json()["ignore_until"] is not None

    patched = api_client.patch(
        f"/sources/{source['id']}/status",
        json={"review_status": "dead"},
        headers=ADMIN_HEADERS,
    )
    assert patched.status_code == 200
    assert patched.json()["is_active"] is False

    logs = api_client.get(f"/sources/{source['id']}/logs", headers=ADMIN_HEADERS)
    assert logs.status_code == 200
    assert logs.json() == []


def test_source_registry_errors(api_client: TestClient) -> None:
    assert api_client.get("/sources/missing", headers=ADMIN_HEADERS).status_code == 404
    invalid = api_client.post("/sources", json={"url": "ftp://files.cup.org"}, headers=ADMIN_HEADERS)
    assert invalid.status_code == 422
    bad_status = api_client.post("/sources", json={"url": "cup.org"}, headers=ADMIN_HEADERS).json()
    response = api_client.patch(
        f"/sources/{bad_status['id']}/status",
        json={"review_status": "fantastic"},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 422
