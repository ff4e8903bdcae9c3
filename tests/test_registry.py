import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from sweeps.services.registry import SourceRegistry, is_eligible
from sweeps.services.repository import RepositoryNotFoundError, RepositoryValidationError
from sweeps.services.store import InMemoryStore


def test_ensure_is_idempotent_across_equivalent_urls() -> None:
    store = InMemoryStore()
    registry = SourceRegistry(store)

    async def run():
        first = await registry.ensure("https://www.Cup.org/schedule/?utm_source=mail", {"source_type": "tournament"})
        second = await registry.ensure("cup.org/schedule")
        return first, second

    first, second = asyncio.run(run())

    assert first.id == second.id
    assert first.canonical_url == "https://cup.org/schedule"
    assert first.host == "cup.org"
    assert first.source_type == "tournament"
    assert first.review_status == "untested"
    assert len(store.sources) == 1


def test_ensure_rejects_unparseable_urls() -> None:
    registry = SourceRegistry(InMemoryStore())
    with pytest.raises(RepositoryValidationError):
        asyncio.run(registry.ensure("ftp://files.cup.org"))


def test_terminal_status_deactivates_source() -> None:
    registry = SourceRegistry(InMemoryStore())

    async def run():
        entry = await registry.ensure("https://cup.org/")
        return await registry.set_status(entry.id, "dead")

    entry = asyncio.run(run())

    assert entry.review_status == "dead"
    assert entry.is_active is False
    assert not is_eligible(entry, datetime.now(timezone.utc))


def test_status_validation() -> None:
    registry = SourceRegistry(InMemoryStore())

    async def run(status: str, terminal: bool):
        entry = await registry.ensure("https://cup.org/")
        if terminal:
            return await registry.mark_terminal(entry.id, status)
        return await registry.set_status(entry.id, status)

    with pytest.raises(RepositoryValidationError):
        asyncio.run(run("keep", terminal=True))
    with pytest.raises(RepositoryValidationError):
        asyncio.run(run("fantastic", terminal=False))
    assert asyncio.run(run("seasonal", terminal=False)).is_active is True


def test_ignore_window_controls_eligibility() -> None:
    registry = SourceRegistry(InMemoryStore())

    async def run():
        entry = await registry.ensure("https://cup.org/")
        return await registry.ignore_for(entry.id, days=7)

    entry = asyncio.run(run())
    now = datetime.now(timezone.utc)

    assert entry.ignore_until is not None
    assert not is_eligible(entry, now)
    assert is_eligible(entry, now + timedelta(days=8))


def test_record_sweep_updates_entry_and_appends_log() -> None:
    store = InMemoryStore()
    registry = SourceRegistry(store)

    async def run():
        entry = await registry.ensure("https://cup.org/")
        await registry.record_sweep(entry.id, "http_error_403", '{"error_code": "http_error_403"}', {"version": 1})
        await registry.record_sweep(entry.id, "ok", '{"error_code": null}', {"version": 1, "extracted_count": 3})
        return entry, await registry.list_logs(entry.id)

    entry, logs = asyncio.run(run())

    assert entry.last_sweep_status == "ok"
    assert entry.last_swept_at is not None
    assert [log.payload.get("extracted_count") for log in logs] == [3, None]


def test_list_logs_for_unknown_source() -> None:
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(SourceRegistry(InMemoryStore()).list_logs("missing"))
