from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sweeps.core.urls import NormalizedUrl
from sweeps.services.candidates import ATTRIBUTE_FIELD_KEYS, Candidate
from sweeps.services.entities import (
    ENTITY_COLUMNS,
    ENTITY_TYPES,
    SOURCE_REVIEW_STATUSES,
    CanonicalEntity,
    CrawlRun,
    SourceRecord,
    SourceRegistryEntry,
    SourceSweepLog,
)
from sweeps.services.repository import (
    RepositoryConstraintOutdatedError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)


class InMemoryStore:
    """Process-local store implementing every repository protocol, used for tests and local runs."""

    def __init__(self, attribute_keys: frozenset[str] = ATTRIBUTE_FIELD_KEYS) -> None:
        self.attribute_keys = attribute_keys
        self.sources: dict[str, SourceRegistryEntry] = {}
        self.sweep_logs: list[SourceSweepLog] = []
        self.candidates: dict[str, Candidate] = {}
        self.entities: dict[tuple[str, str], CanonicalEntity] = {}
        self.runs: dict[str, CrawlRun] = {}
        self.source_records: dict[str, SourceRecord] = {}
        self.merge_calls: list[dict[str, Any]] = []

    async def close(self) -> None:
        return None

    def add_entity(self, entity: CanonicalEntity) -> CanonicalEntity:
        self.entities[(entity.entity_type, entity.id)] = entity
        return entity

    async def get_source(self, source_id: str) -> SourceRegistryEntry:
        try:
            return self.sources[source_id]
        except KeyError as exc:
            raise RepositoryNotFoundError("source not found") from exc

    async def get_source_by_normalized_url(self, normalized_url: str) -> SourceRegistryEntry | None:
        return next((entry for entry in self.sources.values() if entry.normalized_url == normalized_url), None)

    async def create_source(self, url: NormalizedUrl, defaults: dict[str, Any]) -> SourceRegistryEntry:
        existing = await self.get_source_by_normalized_url(url.normalized)
        if existing is not None:
            return existing
        now = _now()
        entry = SourceRegistryEntry(
            id=str(uuid4()),
            canonical_url=url.canonical,
            normalized_url=url.normalized,
            host=url.host,
            source_type=defaults.get("source_type"),
            sport=defaults.get("sport"),
            state=defaults.get("state"),
            created_at=now,
            updated_at=now,
        )
        self.sources[entry.id] = entry
        return entry

    async def update_source_status(
        self,
        source_id: str,
        review_status: str,
        *,
        is_active: bool | None = None,
        at: datetime,
    ) -> SourceRegistryEntry:
        if review_status not in SOURCE_REVIEW_STATUSES:
            raise RepositoryValidationError(f"invalid review status: {review_status}")
        entry = await self.get_source(source_id)
        entry.review_status = review_status
        if is_active is not None:
            entry.is_active = is_active
        entry.updated_at = at
        return entry

    async def set_source_ignore_until(self, source_id: str, until: datetime, *, at: datetime) -> SourceRegistryEntry:
        entry = await self.get_source(source_id)
        entry.ignore_until = until
        entry.updated_at = at
        return entry

    async def record_source_sweep(
        self,
        source_id: str,
        *,
        status: str,
        summary: str,
        payload: dict[str, Any],
        at: datetime,
    ) -> None:
        entry = await self.get_source(source_id)
        entry.last_swept_at = at
        entry.last_sweep_status = status
        entry.last_sweep_summary = summary
        entry.updated_at = at
        self.sweep_logs.append(SourceSweepLog(id=str(uuid4()), source_id=source_id, payload=payload, created_at=at))

    async def list_source_logs(self, source_id: str, limit: int) -> list[SourceSweepLog]:
        logs = [log for log in self.sweep_logs if log.source_id == source_id]
        return list(reversed(logs))[:limit]

    async def list_candidate_keys(self, entity_ids: Sequence[str], kinds: Sequence[str]) -> set[str]:
        wanted_ids = set(entity_ids)
        wanted_kinds = set(kinds)
        return {
            candidate.dedupe_key
            for candidate in self.candidates.values()
            if candidate.entity_id in wanted_ids and candidate.kind in wanted_kinds
        }

    async def insert_candidates(self, candidates: Sequence[Candidate]) -> list[Candidate]:
        for candidate in candidates:
            if candidate.kind == "attribute" and candidate.field_key not in self.attribute_keys:
                raise RepositoryConstraintOutdatedError(f"attribute key not allowed: {candidate.field_key}")
        existing = {candidate.dedupe_key for candidate in self.candidates.values()}
        inserted: list[Candidate] = []
        for candidate in candidates:
            if candidate.dedupe_key in existing:
                continue
            existing.add(candidate.dedupe_key)
            candidate.id = str(uuid4())
            candidate.created_at = _now()
            self.candidates[candidate.id] = candidate
            inserted.append(candidate)
        return inserted

    async def list_candidates(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        *,
        pending_only: bool = True,
        limit: int = 200,
    ) -> list[Candidate]:
        rows = [
            candidate
            for candidate in self.candidates.values()
            if (entity_type is None or candidate.entity_type == entity_type)
            and (entity_id is None or candidate.entity_id == entity_id)
            and (not pending_only or candidate.is_pending)
        ]
        return rows[:limit]

    async def get_candidates(self, candidate_ids: Sequence[str]) -> list[Candidate]:
        return [self.candidates[candidate_id] for candidate_id in candidate_ids if candidate_id in self.candidates]

    async def entities_with_pending(self, entity_type: str, entity_ids: Sequence[str]) -> set[str]:
        wanted = set(entity_ids)
        return {
            candidate.entity_id
            for candidate in self.candidates.values()
            if candidate.entity_type == entity_type and candidate.entity_id in wanted and candidate.is_pending
        }

    async def reject_candidates(self, candidate_ids: Sequence[str], reason: str | None, *, at: datetime) -> int:
        count = 0
        for candidate_id in candidate_ids:
            candidate = self.candidates.get(candidate_id)
            if candidate is None:
                continue
            candidate.rejected_at = at
            candidate.rejected_reason = reason
            candidate.accepted_at = None
            count += 1
        return count

    async def list_sweep_pool(self, entity_type: str, limit: int) -> list[CanonicalEntity]:
        self._require_entity_type(entity_type)
        pool = [
            entity
            for (kind, _), entity in self.entities.items()
            if kind == entity_type and not entity.enrichment_skip
        ]
        pool.sort(key=lambda entity: (entity.last_swept_at is not None, entity.last_swept_at or _EPOCH, entity.id))
        return pool[:limit]

    async def get_entity(self, entity_type: str, entity_id: str) -> CanonicalEntity:
        self._require_entity_type(entity_type)
        try:
            return self.entities[(entity_type, entity_id)]
        except KeyError as exc:
            raise RepositoryNotFoundError(f"{entity_type} not found") from exc

    async def stamp_swept(self, entity_type: str, entity_ids: Sequence[str], *, at: datetime) -> None:
        for entity_id in entity_ids:
            entity = self.entities.get((entity_type, entity_id))
            if entity is not None:
                entity.last_swept_at = at

    async def commit_merge(
        self,
        entity_type: str,
        entity_id: str,
        updates: dict[str, Any],
        accept_ids: Sequence[str],
        *,
        at: datetime,
    ) -> None:
        unknown = sorted(set(updates) - ENTITY_COLUMNS[entity_type])
        if unknown:
            raise RepositoryValidationError(f"columns not writable for {entity_type}: {', '.join(unknown)}")
        entity = await self.get_entity(entity_type, entity_id)
        self.merge_calls.append({"entity_id": entity_id, "updates": dict(updates), "accept_ids": list(accept_ids)})
        if updates:
            entity.fields.update(updates)
            entity.fields["updated_at"] = at
        for candidate_id in accept_ids:
            candidate = self.candidates.get(candidate_id)
            if candidate is not None:
                candidate.accepted_at = candidate.accepted_at or at
                candidate.rejected_at = None

    async def create_run(self, query_or_target: str | None, *, at: datetime) -> CrawlRun:
        run = CrawlRun(id=str(uuid4()), started_at=at, query_or_target=query_or_target)
        self.runs[run.id] = run
        return run

    async def finish_run(self, run_id: str, status: str, *, at: datetime) -> None:
        run = self.runs[run_id]
        self.runs[run_id] = replace(run, status=status, finished_at=at)

    async def create_source_record(
        self,
        *,
        run_id: str,
        source_id: str,
        entity_id: str,
        raw_payload: dict[str, Any],
        confidence: float | None,
    ) -> SourceRecord:
        record = SourceRecord(
            id=str(uuid4()),
            run_id=run_id,
            source_id=source_id,
            entity_id=entity_id,
            raw_payload=raw_payload,
            confidence=confidence,
        )
        self.source_records[record.id] = record
        return record

    async def mark_source_records(self, source_ids: Sequence[str], review_status: str) -> int:
        wanted = set(source_ids)
        count = 0
        for record in self.source_records.values():
            if record.source_id in wanted:
                record.review_status = review_status
                count += 1
        return count

    @staticmethod
    def _require_entity_type(entity_type: str) -> None:
        if entity_type not in ENTITY_TYPES:
            raise RepositoryValidationError(f"unknown entity type: {entity_type}")


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)
