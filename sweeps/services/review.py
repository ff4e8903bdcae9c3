from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sweeps.services.candidates import Candidate
from sweeps.services.entities import ENTITY_COLUMNS
from sweeps.services.registry import SourceRegistry
from sweeps.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    SweepRepository,
)

logger = logging.getLogger(__name__)

APPLIED_BUCKETS = {"contact": "contacts", "venue": "venues", "date": "dates", "attribute": "attributes"}
CONTACT_COLUMNS = {
    "TD": ("tournament_director", "tournament_director_email"),
    "ASSIGNOR": ("referee_contact", "referee_contact_email"),
}
_MIN_TIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class ApplyResult:
    updated_fields: list[str]
    applied: dict[str, int]


@dataclass(slots=True)
class BlockResult:
    rejected: int
    blocked_sources: list[str] = field(default_factory=list)


def field_updates(candidate: Candidate, entity_type: str) -> dict[str, Any]:
    """Canonical columns a single candidate would write."""
    details = candidate.details or {}
    updates: dict[str, Any] = {}
    if candidate.kind == "attribute":
        if candidate.field_key == "cash_at_field":
            accepted = candidate.value.strip().lower() == "yes"
            updates["cash_at_field"] = accepted
            if accepted:
                updates["cash_tournament"] = True
        else:
            updates[candidate.field_key] = candidate.value
    elif candidate.kind == "venue":
        updates["venue"] = details.get("venue_name")
        updates["address"] = details.get("address_text")
        updates["venue_url"] = details.get("venue_url")
    elif candidate.kind == "date":
        updates["start_date"] = details.get("start_date")
        updates["end_date"] = details.get("end_date")
    elif candidate.kind == "contact":
        if entity_type == "assignor":
            updates["email"] = details.get("email")
            updates["phone"] = details.get("phone")
        elif candidate.field_key in CONTACT_COLUMNS:
            name_column, email_column = CONTACT_COLUMNS[candidate.field_key]
            updates[name_column] = details.get("name")
            updates[email_column] = details.get("email")

    allowed = ENTITY_COLUMNS.get(entity_type, frozenset())
    return {column: value for column, value in updates.items() if column in allowed and value not in (None, "")}


class ReviewService:
    def __init__(self, repo: SweepRepository, *, clock: Callable[[], datetime] | None = None) -> None:
        self.repo = repo
        self.registry = SourceRegistry(repo)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def list_pending(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 200,
    ) -> list[Candidate]:
        return await self.repo.list_candidates(entity_type, entity_id, pending_only=True, limit=limit)

    async def apply(self, entity_type: str, entity_id: str, candidate_ids: Sequence[str]) -> ApplyResult:
        selected = await self._load(candidate_ids)
        entity = await self.repo.get_entity(entity_type, entity_id)
        for candidate in selected:
            if candidate.entity_type != entity_type or candidate.entity_id != entity_id:
                raise RepositoryValidationError(f"candidate {candidate.id} does not belong to {entity_type} {entity_id}")
            if candidate.rejected_at is not None:
                raise RepositoryConflictError(f"candidate {candidate.id} was rejected")

        chosen: dict[str, tuple[Any, Candidate]] = {}
        for candidate in selected:
            for column, value in field_updates(candidate, entity_type).items():
                current = chosen.get(column)
                if current is None or _rank(candidate) > _rank(current[1]):
                    chosen[column] = (value, candidate)

        updates = {
            column: value for column, (value, _) in chosen.items() if not _same_value(entity.fields.get(column), value)
        }

        selected_ids = [candidate.id for candidate in selected if candidate.id]
        value_keys = {candidate.value_key for candidate in selected}
        pending = await self.repo.list_candidates(entity_type, entity_id, pending_only=True, limit=10000)
        accept_ids = list(selected_ids)
        for candidate in pending:
            if candidate.id and candidate.id not in accept_ids and candidate.value_key in value_keys:
                accept_ids.append(candidate.id)

        await self.repo.commit_merge(entity_type, entity_id, updates, accept_ids, at=self._clock())

        applied = {bucket: 0 for bucket in APPLIED_BUCKETS.values()}
        for candidate in selected:
            applied[APPLIED_BUCKETS[candidate.kind]] += 1
        logger.info(
            "candidates applied entity_type=%s entity_id=%s updated=%s accepted=%s",
            entity_type,
            entity_id,
            sorted(updates),
            len(accept_ids),
        )
        return ApplyResult(updated_fields=sorted(updates), applied=applied)

    async def reject(self, candidate_ids: Sequence[str], reason: str | None = None) -> int:
        selected = await self._load(candidate_ids)
        count = await self.repo.reject_candidates(
            [candidate.id for candidate in selected if candidate.id],
            reason,
            at=self._clock(),
        )
        logger.info("candidates rejected count=%s reason=%s", count, reason)
        return count

    async def block(self, candidate_ids: Sequence[str], reason: str | None = None) -> BlockResult:
        selected = await self._load(candidate_ids)
        rejected = await self.repo.reject_candidates(
            [candidate.id for candidate in selected if candidate.id],
            reason or "blocked",
            at=self._clock(),
        )

        blocked_urls: list[str] = []
        source_ids: list[str] = []
        for source_url in dict.fromkeys(candidate.source_url for candidate in selected if candidate.source_url):
            try:
                entry = await self.registry.ensure(source_url)
            except RepositoryValidationError:
                logger.info("block skipped unparseable source url=%s", source_url)
                continue
            if entry.review_status != "blocked":
                entry = await self.registry.mark_terminal(entry.id, "blocked")
            source_ids.append(entry.id)
            blocked_urls.append(entry.canonical_url)

        await self.repo.mark_source_records(source_ids, "blocked")
        logger.info("candidates blocked rejected=%s sources=%s", rejected, len(source_ids))
        return BlockResult(rejected=rejected, blocked_sources=blocked_urls)

    async def _load(self, candidate_ids: Sequence[str]) -> list[Candidate]:
        wanted = list(dict.fromkeys(candidate_ids))
        if not wanted:
            raise RepositoryValidationError("candidate_ids must not be empty")
        candidates = await self.repo.get_candidates(wanted)
        found = {candidate.id for candidate in candidates}
        missing = [candidate_id for candidate_id in wanted if candidate_id not in found]
        if missing:
            raise RepositoryNotFoundError(f"candidates not found: {', '.join(missing)}")
        return candidates


def _rank(candidate: Candidate) -> tuple[float, datetime]:
    return (candidate.confidence or 0.0, candidate.created_at or _MIN_TIME)


def _same_value(current: Any, proposed: Any) -> bool:
    if isinstance(current, bool) or isinstance(proposed, bool):
        return current == proposed
    if current is None:
        return False
    return str(current).strip() == str(proposed).strip()
