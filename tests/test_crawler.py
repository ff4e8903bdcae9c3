import asyncio

import httpx
import pytest

from sweeps.core.errors import SweepError
from sweeps.services.crawler import crawl_entity
from sweeps.services.fetcher import DiagnosticFetcher

PADDING = "<style>/*" + "." * 2200 + "*/</style>"


def _html(body: str) -> str:
    return f"<html><head>{PADDING}</head><body>{body}</body></html>"


SEED = _html(
    "<h1>Bay Shootout</h1><p>Aug 8-9, 2026</p>"
    '<a href="/venues">Venues</a> <a href="/contact">Contact us</a> <a href="/gallery">Photos</a>'
)
CONTACT = _html("<p>Tournament Director: Jane Smith</p><p>Email: jane@bayshootout.org</p>")
VENUES = _html("<ul><li><strong>Colt Park</strong> 200 Hope St, Bristol, RI 02809</li></ul>")
GALLERY = _html("<p>Photos from last year</p>")
EMPTY = _html("<p>Welcome</p>")


def _crawl(pages: dict[str, httpx.Response], seed: str = "https://bayshootout.org/", **kwargs):
    requested: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path in pages:
            return pages[request.url.path]
        return httpx.Response(404, headers={"content-type": "text/html"}, text="nope")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=False) as client:
            fetcher = DiagnosticFetcher(client, user_agent="test-agent/1.0")
            return await crawl_entity(fetcher, seed, **kwargs)

    return asyncio.run(run()), requested


def _ok(html: str) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, text=html)


def test_crawl_visits_priority_links_first_and_stops_when_fields_are_covered() -> None:
    pages = {"/": _ok(SEED), "/contact": _ok(CONTACT), "/venues": _ok(VENUES), "/gallery": _ok(GALLERY)}

    result, requested = _crawl(pages, wanted_fields=["start_date", "end_date", "venue", "address"])

    assert requested == ["/", "/contact", "/venues"]
    assert result.pages_fetched == 3
    assert result.error_code is None
    assert result.covered_fields() >= {"start_date", "end_date", "venue", "address", "email"}
    contacts = [contact for extraction in result.extractions for contact in extraction.contacts]
    assert [contact.email for contact in contacts] == ["jane@bayshootout.org"]


def test_crawl_respects_page_budget() -> None:
    pages = {"/": _ok(SEED), "/contact": _ok(CONTACT), "/venues": _ok(VENUES), "/gallery": _ok(GALLERY)}

    result, requested = _crawl(pages, max_pages=2)

    assert requested == ["/", "/contact"]
    assert len(result.visits) == 2


def test_crawl_records_failing_subpages_and_continues() -> None:
    pages = {"/": _ok(SEED), "/venues": _ok(VENUES)}

    result, _ = _crawl(pages, wanted_fields=["venue"], include_contacts=False)

    assert [(visit.url, visit.error_code) for visit in result.visits] == [
        ("https://bayshootout.org/", None),
        ("https://bayshootout.org/contact", "http_error_404"),
        ("https://bayshootout.org/venues", None),
    ]
    assert result.pages_fetched == 2


def test_crawl_raises_when_seed_fails() -> None:
    pages = {"/": httpx.Response(403, headers={"content-type": "text/html"}, text="denied")}

    with pytest.raises(SweepError) as excinfo:
        _crawl(pages)

    assert excinfo.value.code == "http_error_403"


def test_crawl_rejects_json_seed_as_unsupported_layout() -> None:
    body = b'{"events": [' + b'{"name": "x"},' * 200 + b'{"name": "y"}]}'
    pages = {"/": httpx.Response(200, headers={"content-type": "application/json"}, content=body)}

    with pytest.raises(SweepError) as excinfo:
        _crawl(pages)

    assert excinfo.value.code == "unsupported_layout"


def test_crawl_flags_pages_without_fields() -> None:
    result, _ = _crawl({"/": _ok(EMPTY)})

    assert result.pages_fetched == 1
    assert result.error_code == "html_received_no_events"
