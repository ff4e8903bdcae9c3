import asyncio
from datetime import date

import pytest

from sweeps.extractors.contacts import Contact
from sweeps.extractors.dates import DateRange
from sweeps.services.candidates import (
    attribute_candidate,
    contact_candidate,
    date_candidate,
    venue_candidate,
)
from sweeps.services.entities import CanonicalEntity
from sweeps.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from sweeps.services.review import ReviewService, field_updates
from sweeps.services.store import InMemoryStore

SOURCE = "https://oceanstatecup.org/"


def _seeded_store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_entity(CanonicalEntity(id="t-1", entity_type="tournament", name="Ocean State Cup"))
    store.add_entity(CanonicalEntity(id="t-2", entity_type="tournament", name="Bay Shootout"))
    candidates = [
        attribute_candidate("tournament", "t-1", key="team_fee", value="$650", source_url=SOURCE, confidence=0.8),
        attribute_candidate(
            "tournament",
            "t-1",
            key="team_fee",
            value="$650",
            source_url="https://oceanstatecup.org/fees",
            confidence=0.6,
        ),
        attribute_candidate("tournament", "t-1", key="cash_at_field", value="yes", source_url=SOURCE, confidence=0.7),
        date_candidate(
            "tournament",
            "t-1",
            DateRange(start_date="2026-06-12", end_date="2026-06-14", date_text="June 12-14, 2026"),
            source_url=SOURCE,
            confidence=0.7,
        ),
        venue_candidate(
            "tournament",
            "t-1",
            venue_name="Riverside Park",
            address_text="100 River Rd, Warwick, RI 02886",
            source_url=SOURCE,
            confidence=0.8,
        ),
        contact_candidate(
            "tournament",
            "t-1",
            Contact(
                role="TD",
                name="Jane Smith",
                email="jane@oceanstatecup.org",
                phone=None,
                confidence=0.9,
                evidence_text="Tournament Director: Jane Smith",
            ),
            source_url="https://oceanstatecup.org/contact",
        ),
        attribute_candidate("tournament", "t-2", key="team_fee", value="$700", source_url=SOURCE, confidence=0.8),
    ]
    asyncio.run(store.insert_candidates(candidates))
    return store


def _ids(store: InMemoryStore, entity_id: str, field_key: str | None = None) -> list[str]:
    return [
        candidate.id
        for candidate in store.candidates.values()
        if candidate.entity_id == entity_id and (field_key is None or candidate.field_key == field_key)
    ]


def test_field_updates_map_candidates_to_columns() -> None:
    store = _seeded_store()
    by_key = {candidate.field_key: candidate for candidate in store.candidates.values() if candidate.entity_id == "t-1"}

    assert field_updates(by_key["cash_at_field"], "tournament") == {"cash_at_field": True, "cash_tournament": True}
    assert field_updates(by_key["date_range"], "tournament") == {"start_date": "2026-06-12", "end_date": "2026-06-14"}
    assert field_updates(by_key["venue"], "tournament") == {
        "venue": "Riverside Park",
        "address": "100 River Rd, Warwick, RI 02886",
    }
    assert field_updates(by_key["TD"], "tournament") == {
        "tournament_director": "Jane Smith",
        "tournament_director_email": "jane@oceanstatecup.org",
    }


def test_apply_writes_fields_and_accepts_duplicates() -> None:
    store = _seeded_store()
    service = ReviewService(store)
    fee_ids = _ids(store, "t-1", "team_fee")
    chosen = [fee_ids[0], *_ids(store, "t-1", "date_range"), *_ids(store, "t-1", "venue")]

    result = asyncio.run(service.apply("tournament", "t-1", chosen))

    assert result.updated_fields == ["address", "end_date", "start_date", "team_fee", "venue"]
    assert result.applied == {"contacts": 0, "venues": 1, "dates": 1, "attributes": 1}
    entity = store.entities[("tournament", "t-1")]
    assert entity.fields["team_fee"] == "$650"
    assert entity.fields["start_date"] == "2026-06-12"
    assert store.candidates[fee_ids[1]].accepted_at is not None
    assert store.candidates[_ids(store, "t-2")[0]].is_pending


def test_apply_is_idempotent() -> None:
    store = _seeded_store()
    service = ReviewService(store)
    chosen = _ids(store, "t-1", "team_fee")[:1]

    first = asyncio.run(service.apply("tournament", "t-1", chosen))
    second = asyncio.run(service.apply("tournament", "t-1", chosen))

    assert first.updated_fields == ["team_fee"]
    assert second.updated_fields == []
    assert store.entities[("tournament", "t-1")].fields["team_fee"] == "$650"
    assert store.merge_calls[-1]["updates"] == {}


def test_apply_prefers_highest_confidence_per_column() -> None:
    store = _seeded_store()
    extra = attribute_candidate("tournament", "t-1", key="team_fee", value="$900", source_url=SOURCE, confidence=0.95)
    asyncio.run(store.insert_candidates([extra]))
    service = ReviewService(store)

    asyncio.run(service.apply("tournament", "t-1", _ids(store, "t-1", "team_fee")))

    assert store.entities[("tournament", "t-1")].fields["team_fee"] == "$900"


def test_apply_rejects_foreign_and_rejected_candidates() -> None:
    store = _seeded_store()
    service = ReviewService(store)
    foreign = _ids(store, "t-2")

    with pytest.raises(RepositoryValidationError):
        asyncio.run(service.apply("tournament", "t-1", foreign))

    asyncio.run(service.reject(foreign, "wrong event"))
    with pytest.raises(RepositoryConflictError):
        asyncio.run(service.apply("tournament", "t-2", foreign))

    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(service.apply("tournament", "t-1", ["missing-id"]))
    with pytest.raises(RepositoryValidationError):
        asyncio.run(service.apply("tournament", "t-1", []))


def test_reject_records_reason() -> None:
    store = _seeded_store()
    service = ReviewService(store)
    target = _ids(store, "t-1", "cash_at_field")

    rejected = asyncio.run(service.reject(target, "not for referees"))

    assert rejected == 1
    candidate = store.candidates[target[0]]
    assert candidate.rejected_reason == "not for referees"
    assert not candidate.is_pending
    assert all(candidate.id not in target for candidate in asyncio.run(service.list_pending("tournament", "t-1")))


def test_block_rejects_and_blocks_source() -> None:
    store = _seeded_store()
    service = ReviewService(store)
    target = _ids(store, "t-1", "TD")

    async def run():
        record_source = await service.registry.ensure("https://oceanstatecup.org/contact")
        await store.create_source_record(
            run_id="run-1",
            source_id=record_source.id,
            entity_id="t-1",
            raw_payload={},
            confidence=0.9,
        )
        return await service.block(target, "spam page")

    result = asyncio.run(run())

    assert result.rejected == 1
    assert result.blocked_sources == ["https://oceanstatecup.org/contact"]
    source = next(entry for entry in store.sources.values() if entry.canonical_url == result.blocked_sources[0])
    assert source.review_status == "blocked"
    assert source.is_active is False
    assert [record.review_status for record in store.source_records.values()] == ["blocked"]
    assert store.candidates[target[0]].rejected_reason == "spam page"


def test_assignor_contact_updates_email_and_phone() -> None:
    store = InMemoryStore()
    store.add_entity(CanonicalEntity(id="a-1", entity_type="assignor", name="RI Refs"))
    contact = Contact(
        role="ASSIGNOR",
        name="Mark Jones",
        email="mark@rirefs.org",
        phone="(401) 555-0100",
        confidence=0.9,
        evidence_text="Referee Assignor: Mark Jones",
    )
    inserted = asyncio.run(store.insert_candidates([contact_candidate("assignor", "a-1", contact, source_url=SOURCE)]))

    result = asyncio.run(ReviewService(store).apply("assignor", "a-1", [inserted[0].id]))

    assert result.updated_fields == ["email", "phone"]
    assert result.applied["contacts"] == 1
    assert store.entities[("assignor", "a-1")].fields == {
        "email": "mark@rirefs.org",
        "phone": "(401) 555-0100",
        "updated_at": store.entities[("assignor", "a-1")].fields["updated_at"],
    }


def test_date_values_compare_against_stored_dates() -> None:
    store = _seeded_store()
    store.entities[("tournament", "t-1")].fields.update({"start_date": date(2026, 6, 12), "end_date": date(2026, 6, 14)})

    result = asyncio.run(ReviewService(store).apply("tournament", "t-1", _ids(store, "t-1", "date_range")))

    assert result.updated_fields == []
