from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sweeps.core.urls import normalize_source_url
from sweeps.services.entities import SOURCE_REVIEW_STATUSES, TERMINAL_SOURCE_STATUSES, SourceRegistryEntry, SourceSweepLog
from sweeps.services.repository import RepositoryValidationError, SourceRegistryRepo

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_DAYS = 7
MAX_LOG_ROWS = 50


def is_eligible(entry: SourceRegistryEntry, now: datetime) -> bool:
    if not entry.is_active or entry.is_terminal:
        return False
    return entry.ignore_until is None or entry.ignore_until <= now


class SourceRegistry:
    def __init__(self, repo: SourceRegistryRepo) -> None:
        self.repo = repo

    async def ensure(self, url: str, defaults: dict[str, Any] | None = None) -> SourceRegistryEntry:
        try:
            normalized = normalize_source_url(url)
        except ValueError as exc:
            raise RepositoryValidationError(str(exc)) from exc
        existing = await self.repo.get_source_by_normalized_url(normalized.normalized)
        if existing is not None:
            return existing
        entry = await self.repo.create_source(normalized, defaults or {})
        logger.info("source registered id=%s url=%s", entry.id, entry.canonical_url)
        return entry

    async def get(self, source_id: str) -> SourceRegistryEntry:
        return await self.repo.get_source(source_id)

    async def mark_terminal(self, source_id: str, status: str) -> SourceRegistryEntry:
        if status not in TERMINAL_SOURCE_STATUSES:
            raise RepositoryValidationError(f"not a terminal status: {status}")
        entry = await self.repo.update_source_status(source_id, status, is_active=False, at=_now())
        logger.info("source marked terminal id=%s status=%s", source_id, status)
        return entry

    async def set_status(self, source_id: str, status: str) -> SourceRegistryEntry:
        if status in TERMINAL_SOURCE_STATUSES:
            return await self.mark_terminal(source_id, status)
        if status not in SOURCE_REVIEW_STATUSES:
            raise RepositoryValidationError(f"invalid review status: {status}")
        return await self.repo.update_source_status(source_id, status, at=_now())

    async def ignore_for(self, source_id: str, days: int = DEFAULT_IGNORE_DAYS) -> SourceRegistryEntry:
        if days < 1:
            raise RepositoryValidationError("days must be positive")
        now = _now()
        return await self.repo.set_source_ignore_until(source_id, now + timedelta(days=days), at=now)

    async def record_sweep(self, source_id: str, status: str, summary: str, log_payload: dict[str, Any]) -> None:
        await self.repo.record_source_sweep(source_id, status=status, summary=summary, payload=log_payload, at=_now())

    async def list_logs(self, source_id: str, limit: int = MAX_LOG_ROWS) -> list[SourceSweepLog]:
        await self.repo.get_source(source_id)
        return await self.repo.list_source_logs(source_id, max(1, min(limit, MAX_LOG_ROWS)))


def _now() -> datetime:
    return datetime.now(timezone.utc)
