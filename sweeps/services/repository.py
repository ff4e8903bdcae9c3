from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from sweeps.core.config import get_settings
from sweeps.core.urls import NormalizedUrl
from sweeps.services.candidates import Candidate
from sweeps.services.entities import (
    BOOL_COLUMNS,
    DATE_COLUMNS,
    ENTITY_COLUMNS,
    CanonicalEntity,
    CrawlRun,
    SourceRecord,
    SourceRegistryEntry,
    SourceSweepLog,
)

CANDIDATE_VALUE_CONSTRAINT = "enrichment_candidates_value_check"
ENTITY_TABLES = {"tournament": "tournaments", "assignor": "assignors"}
SOURCE_COLUMNS = """
    id::text as id,
    canonical_url,
    normalized_url,
    host,
    source_type,
    sport,
    state,
    is_active,
    review_status,
    ignore_until,
    last_swept_at,
    last_sweep_status,
    last_sweep_summary,
    created_at,
    updated_at
"""
CANDIDATE_COLUMNS = """
    id::text as id,
    entity_type,
    entity_id::text as entity_id,
    kind,
    field_key,
    value,
    details,
    source_url,
    confidence,
    evidence_text,
    created_at,
    accepted_at,
    rejected_at,
    rejected_reason
"""


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class RepositoryConstraintOutdatedError(RepositoryError):
    """Raised when the candidate value check constraint rejects a known attribute key."""


class SourceRegistryRepo(Protocol):
    async def get_source(self, source_id: str) -> SourceRegistryEntry: ...

    async def get_source_by_normalized_url(self, normalized_url: str) -> SourceRegistryEntry | None: ...

    async def create_source(self, url: NormalizedUrl, defaults: dict[str, Any]) -> SourceRegistryEntry: ...

    async def update_source_status(
        self,
        source_id: str,
        review_status: str,
        *,
        is_active: bool | None = None,
        at: datetime,
    ) -> SourceRegistryEntry: ...

    async def set_source_ignore_until(self, source_id: str, until: datetime, *, at: datetime) -> SourceRegistryEntry: ...

    async def record_source_sweep(
        self,
        source_id: str,
        *,
        status: str,
        summary: str,
        payload: dict[str, Any],
        at: datetime,
    ) -> None: ...

    async def list_source_logs(self, source_id: str, limit: int) -> list[SourceSweepLog]: ...


class CandidateRepo(Protocol):
    async def list_candidate_keys(self, entity_ids: Sequence[str], kinds: Sequence[str]) -> set[str]: ...

    async def insert_candidates(self, candidates: Sequence[Candidate]) -> list[Candidate]: ...

    async def list_candidates(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        *,
        pending_only: bool = True,
        limit: int = 200,
    ) -> list[Candidate]: ...

    async def get_candidates(self, candidate_ids: Sequence[str]) -> list[Candidate]: ...

    async def entities_with_pending(self, entity_type: str, entity_ids: Sequence[str]) -> set[str]: ...

    async def reject_candidates(self, candidate_ids: Sequence[str], reason: str | None, *, at: datetime) -> int: ...


class CanonicalEntityRepo(Protocol):
    async def list_sweep_pool(self, entity_type: str, limit: int) -> list[CanonicalEntity]: ...

    async def get_entity(self, entity_type: str, entity_id: str) -> CanonicalEntity: ...

    async def stamp_swept(self, entity_type: str, entity_ids: Sequence[str], *, at: datetime) -> None: ...

    async def commit_merge(
        self,
        entity_type: str,
        entity_id: str,
        updates: dict[str, Any],
        accept_ids: Sequence[str],
        *,
        at: datetime,
    ) -> None: ...


class CrawlRunRepo(Protocol):
    async def create_run(self, query_or_target: str | None, *, at: datetime) -> CrawlRun: ...

    async def finish_run(self, run_id: str, status: str, *, at: datetime) -> None: ...

    async def create_source_record(
        self,
        *,
        run_id: str,
        source_id: str,
        entity_id: str,
        raw_payload: dict[str, Any],
        confidence: float | None,
    ) -> SourceRecord: ...

    async def mark_source_records(self, source_ids: Sequence[str], review_status: str) -> int: ...


class SweepRepository(SourceRegistryRepo, CandidateRepo, CanonicalEntityRepo, CrawlRunRepo, Protocol):
    async def close(self) -> None: ...


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_source(self, source_id: str) -> SourceRegistryEntry:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"select {SOURCE_COLUMNS} from source_registry where id = $1::uuid", source_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("source not found") from exc
        if row is None:
            raise RepositoryNotFoundError("source not found")
        return self._source_from_row(row)

    async def get_source_by_normalized_url(self, normalized_url: str) -> SourceRegistryEntry | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {SOURCE_COLUMNS} from source_registry where normalized_url = $1",
            normalized_url,
        )
        return self._source_from_row(row) if row is not None else None

    async def create_source(self, url: NormalizedUrl, defaults: dict[str, Any]) -> SourceRegistryEntry:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    insert into source_registry (
                      canonical_url,
                      normalized_url,
                      host,
                      source_type,
                      sport,
                      state,
                      review_status,
                      is_active
                    )
                    values ($1, $2, $3, $4, $5, $6, 'untested', true)
                    on conflict (normalized_url) do nothing
                    returning {SOURCE_COLUMNS}
                    """,
                    url.canonical,
                    url.normalized,
                    url.host,
                    defaults.get("source_type"),
                    defaults.get("sport"),
                    defaults.get("state"),
                )
                if row is None:
                    row = await conn.fetchrow(
                        f"select {SOURCE_COLUMNS} from source_registry where normalized_url = $1",
                        url.normalized,
                    )
        if row is None:
            raise RepositoryConflictError("source could not be registered")
        return self._source_from_row(row)

    async def update_source_status(
        self,
        source_id: str,
        review_status: str,
        *,
        is_active: bool | None = None,
        at: datetime,
    ) -> SourceRegistryEntry:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update source_registry
                set review_status = $2,
                    is_active = coalesce($3, is_active),
                    updated_at = $4
                where id = $1::uuid
                returning {SOURCE_COLUMNS}
                """,
                source_id,
                review_status,
                is_active,
                at,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("source not found") from exc
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError(f"invalid review status: {review_status}") from exc
        if row is None:
            raise RepositoryNotFoundError("source not found")
        return self._source_from_row(row)

    async def set_source_ignore_until(self, source_id: str, until: datetime, *, at: datetime) -> SourceRegistryEntry:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update source_registry
                set ignore_until = $2,
                    updated_at = $3
                where id = $1::uuid
                returning {SOURCE_COLUMNS}
                """,
                source_id,
                until,
                at,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("source not found") from exc
        if row is None:
            raise RepositoryNotFoundError("source not found")
        return self._source_from_row(row)

    async def record_source_sweep(
        self,
        source_id: str,
        *,
        status: str,
        summary: str,
        payload: dict[str, Any],
        at: datetime,
    ) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                updated = await conn.fetchval(
                    """
                    update source_registry
                    set last_swept_at = $2,
                        last_sweep_status = $3,
                        last_sweep_summary = $4,
                        updated_at = $2
                    where id = $1::uuid
                    returning id::text
                    """,
                    source_id,
                    at,
                    status,
                    summary,
                )
                if updated is None:
                    raise RepositoryNotFoundError("source not found")
                await conn.execute(
                    """
                    insert into source_sweep_logs (source_id, payload, created_at)
                    values ($1::uuid, $2::jsonb, $3)
                    """,
                    source_id,
                    json.dumps(payload),
                    at,
                )

    async def list_source_logs(self, source_id: str, limit: int) -> list[SourceSweepLog]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select id::text as id, source_id::text as source_id, payload, created_at
                from source_sweep_logs
                where source_id = $1::uuid
                order by created_at desc
                limit $2
                """,
                source_id,
                limit,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("source not found") from exc
        return [
            SourceSweepLog(
                id=row["id"],
                source_id=row["source_id"],
                payload=self._coerce_json(row["payload"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def list_candidate_keys(self, entity_ids: Sequence[str], kinds: Sequence[str]) -> set[str]:
        if not entity_ids or not kinds:
            return set()
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select dedupe_key
            from enrichment_candidates
            where entity_id = any($1::uuid[])
              and kind = any($2::text[])
            """,
            list(entity_ids),
            list(kinds),
        )
        return {row["dedupe_key"] for row in rows}

    async def insert_candidates(self, candidates: Sequence[Candidate]) -> list[Candidate]:
        if not candidates:
            return []
        pool = await self._get_pool()
        inserted: list[Candidate] = []
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for candidate in candidates:
                        row = await conn.fetchrow(
                            """
                            insert into enrichment_candidates (
                              entity_type,
                              entity_id,
                              kind,
                              field_key,
                              value,
                              details,
                              source_url,
                              confidence,
                              evidence_text,
                              dedupe_key
                            )
                            values ($1, $2::uuid, $3, $4, $5, $6::jsonb, $7, $8, $9, $10)
                            on conflict (dedupe_key) do nothing
                            returning id::text as id, created_at
                            """,
                            candidate.entity_type,
                            candidate.entity_id,
                            candidate.kind,
                            candidate.field_key,
                            candidate.value,
                            json.dumps(candidate.details),
                            candidate.source_url,
                            candidate.confidence,
                            candidate.evidence_text,
                            candidate.dedupe_key,
                        )
                        if row is None:
                            continue
                        candidate.id = row["id"]
                        candidate.created_at = row["created_at"]
                        inserted.append(candidate)
        except pg_exc.CheckViolationError as exc:
            if getattr(exc, "constraint_name", None) == CANDIDATE_VALUE_CONSTRAINT:
                raise RepositoryConstraintOutdatedError(str(exc)) from exc
            raise RepositoryValidationError(str(exc)) from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(str(exc)) from exc
        return inserted

    async def list_candidates(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        *,
        pending_only: bool = True,
        limit: int = 200,
    ) -> list[Candidate]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {CANDIDATE_COLUMNS}
                from enrichment_candidates
                where ($1::text is null or entity_type = $1)
                  and ($2::uuid is null or entity_id = $2::uuid)
                  and (not $3 or (accepted_at is null and rejected_at is null))
                order by created_at desc, confidence desc nulls last
                limit $4
                """,
                entity_type,
                entity_id,
                pending_only,
                limit,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid entity id") from exc
        return [self._candidate_from_row(row) for row in rows]

    async def get_candidates(self, candidate_ids: Sequence[str]) -> list[Candidate]:
        if not candidate_ids:
            return []
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"select {CANDIDATE_COLUMNS} from enrichment_candidates where id = any($1::uuid[])",
                list(candidate_ids),
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid candidate id") from exc
        return [self._candidate_from_row(row) for row in rows]

    async def entities_with_pending(self, entity_type: str, entity_ids: Sequence[str]) -> set[str]:
        if not entity_ids:
            return set()
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select distinct entity_id::text as entity_id
            from enrichment_candidates
            where entity_type = $1
              and entity_id = any($2::uuid[])
              and accepted_at is null
              and rejected_at is null
            """,
            entity_type,
            list(entity_ids),
        )
        return {row["entity_id"] for row in rows}

    async def reject_candidates(self, candidate_ids: Sequence[str], reason: str | None, *, at: datetime) -> int:
        if not candidate_ids:
            return 0
        pool = await self._get_pool()
        try:
            result = await pool.execute(
                """
                update enrichment_candidates
                set rejected_at = $2,
                    rejected_reason = $3,
                    accepted_at = null
                where id = any($1::uuid[])
                """,
                list(candidate_ids),
                at,
                reason,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid candidate id") from exc
        return self._affected_rows(result)

    async def list_sweep_pool(self, entity_type: str, limit: int) -> list[CanonicalEntity]:
        table = self._entity_table(entity_type)
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {self._entity_select(entity_type)}
            from {table}
            where coalesce(enrichment_skip, false) = false
            order by last_swept_at asc nulls first, id
            limit $1
            """,
            limit,
        )
        return [self._entity_from_row(entity_type, row) for row in rows]

    async def get_entity(self, entity_type: str, entity_id: str) -> CanonicalEntity:
        table = self._entity_table(entity_type)
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {self._entity_select(entity_type)} from {table} where id = $1::uuid",
                entity_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError(f"{entity_type} not found") from exc
        if row is None:
            raise RepositoryNotFoundError(f"{entity_type} not found")
        return self._entity_from_row(entity_type, row)

    async def stamp_swept(self, entity_type: str, entity_ids: Sequence[str], *, at: datetime) -> None:
        if not entity_ids:
            return
        table = self._entity_table(entity_type)
        pool = await self._get_pool()
        await pool.execute(
            f"update {table} set last_swept_at = $2 where id = any($1::uuid[])",
            list(entity_ids),
            at,
        )

    async def commit_merge(
        self,
        entity_type: str,
        entity_id: str,
        updates: dict[str, Any],
        accept_ids: Sequence[str],
        *,
        at: datetime,
    ) -> None:
        table = self._entity_table(entity_type)
        allowed = ENTITY_COLUMNS[entity_type]
        unknown = sorted(set(updates) - allowed)
        if unknown:
            raise RepositoryValidationError(f"columns not writable for {entity_type}: {', '.join(unknown)}")

        columns = sorted(updates)
        values = [self._coerce_column(column, updates[column]) for column in columns]
        assignments = [f"{column} = ${index + 2}" for index, column in enumerate(columns)]
        assignments.append(f"updated_at = ${len(columns) + 2}")

        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if columns:
                        updated = await conn.fetchval(
                            f"update {table} set {', '.join(assignments)} where id = $1::uuid returning id::text",
                            entity_id,
                            *values,
                            at,
                        )
                        if updated is None:
                            raise RepositoryNotFoundError(f"{entity_type} not found")
                    if accept_ids:
                        await conn.execute(
                            """
                            update enrichment_candidates
                            set accepted_at = coalesce(accepted_at, $2),
                                rejected_at = null
                            where id = any($1::uuid[])
                            """,
                            list(accept_ids),
                            at,
                        )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(str(exc)) from exc

    async def create_run(self, query_or_target: str | None, *, at: datetime) -> CrawlRun:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            insert into crawl_runs (started_at, status, query_or_target)
            values ($1, 'running', $2)
            returning id::text as id, started_at, status, query_or_target
            """,
            at,
            query_or_target,
        )
        return CrawlRun(
            id=row["id"],
            started_at=row["started_at"],
            status=row["status"],
            query_or_target=row["query_or_target"],
        )

    async def finish_run(self, run_id: str, status: str, *, at: datetime) -> None:
        pool = await self._get_pool()
        await pool.execute(
            "update crawl_runs set status = $2, finished_at = $3 where id = $1::uuid",
            run_id,
            status,
            at,
        )

    async def create_source_record(
        self,
        *,
        run_id: str,
        source_id: str,
        entity_id: str,
        raw_payload: dict[str, Any],
        confidence: float | None,
    ) -> SourceRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into source_records (run_id, source_id, entity_id, raw_payload, confidence)
                values ($1::uuid, $2::uuid, $3::uuid, $4::jsonb, $5)
                returning id::text as id, review_status
                """,
                run_id,
                source_id,
                entity_id,
                json.dumps(raw_payload),
                confidence,
            )
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryConflictError(str(exc)) from exc
        return SourceRecord(
            id=row["id"],
            run_id=run_id,
            source_id=source_id,
            entity_id=entity_id,
            raw_payload=raw_payload,
            confidence=confidence,
            review_status=row["review_status"],
        )

    async def mark_source_records(self, source_ids: Sequence[str], review_status: str) -> int:
        if not source_ids:
            return 0
        pool = await self._get_pool()
        result = await pool.execute(
            "update source_records set review_status = $2 where source_id = any($1::uuid[])",
            list(source_ids),
            review_status,
        )
        return self._affected_rows(result)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("SWEEPS_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _entity_table(entity_type: str) -> str:
        try:
            return ENTITY_TABLES[entity_type]
        except KeyError as exc:
            raise RepositoryValidationError(f"unknown entity type: {entity_type}") from exc

    @staticmethod
    def _entity_select(entity_type: str) -> str:
        columns = ["id::text as id", "name", "official_website_url", "source_url", "last_swept_at", "enrichment_skip"]
        columns.extend(sorted(ENTITY_COLUMNS[entity_type]))
        return ", ".join(columns)

    @staticmethod
    def _entity_from_row(entity_type: str, row: asyncpg.Record) -> CanonicalEntity:
        fields: dict[str, Any] = {}
        for column in ENTITY_COLUMNS[entity_type]:
            value = row[column]
            fields[column] = value.isoformat() if isinstance(value, date) else value
        return CanonicalEntity(
            id=row["id"],
            entity_type=entity_type,
            name=row["name"],
            official_website_url=row["official_website_url"],
            source_url=row["source_url"],
            fields=fields,
            last_swept_at=row["last_swept_at"],
            enrichment_skip=bool(row["enrichment_skip"]),
        )

    @staticmethod
    def _source_from_row(row: asyncpg.Record) -> SourceRegistryEntry:
        return SourceRegistryEntry(
            id=row["id"],
            canonical_url=row["canonical_url"],
            normalized_url=row["normalized_url"],
            host=row["host"],
            source_type=row["source_type"],
            sport=row["sport"],
            state=row["state"],
            is_active=bool(row["is_active"]),
            review_status=row["review_status"],
            ignore_until=row["ignore_until"],
            last_swept_at=row["last_swept_at"],
            last_sweep_status=row["last_sweep_status"],
            last_sweep_summary=row["last_sweep_summary"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @classmethod
    def _candidate_from_row(cls, row: asyncpg.Record) -> Candidate:
        return Candidate(
            id=row["id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            kind=row["kind"],
            field_key=row["field_key"],
            value=row["value"],
            details=cls._coerce_json(row["details"]),
            source_url=row["source_url"],
            confidence=row["confidence"],
            evidence_text=row["evidence_text"],
            created_at=row["created_at"],
            accepted_at=row["accepted_at"],
            rejected_at=row["rejected_at"],
            rejected_reason=row["rejected_reason"],
        )

    @staticmethod
    def _coerce_json(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        return value if isinstance(value, dict) else {}

    @staticmethod
    def _coerce_column(column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in DATE_COLUMNS and isinstance(value, str):
            try:
                return date.fromisoformat(value)
            except ValueError as exc:
                raise RepositoryValidationError(f"invalid date for {column}: {value}") from exc
        if column in BOOL_COLUMNS and not isinstance(value, bool):
            return str(value).strip().lower() in {"yes", "true", "1"}
        return value

    @staticmethod
    def _affected_rows(status: str) -> int:
        try:
            return int(status.rsplit(" ", 1)[-1])
        except (ValueError, AttributeError):
            return 0


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
