from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from opentelemetry import trace

from sweeps.core.config import Settings
from sweeps.core.errors import SweepError, SweepErrorKind, build_sweep_summary, sweep_log_payload
from sweeps.core.telemetry import record_target_failure
from sweeps.extractors.engine import strategy_for_url
from sweeps.services.candidates import (
    CANDIDATE_KINDS,
    Candidate,
    attribute_candidate,
    attribute_hit_candidate,
    contact_candidate,
    date_candidate,
    venue_candidate,
)
from sweeps.services.crawler import CrawlResult, crawl_entity
from sweeps.services.dedupe import stage
from sweeps.services.entities import ENTITY_COLUMNS, ENTITY_TYPES, CanonicalEntity, CrawlRun
from sweeps.services.fetcher import DiagnosticFetcher
from sweeps.services.registry import SourceRegistry, is_eligible
from sweeps.services.repository import (
    RepositoryConstraintOutdatedError,
    RepositoryError,
    RepositoryValidationError,
    SweepRepository,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_POOL_SIZE = 5000
POOL_FACTOR = 20
MAX_CONTACTS_PER_ENTITY = 20
MAX_VENUES_PER_ENTITY = 30
MAX_ATTRIBUTES_PER_ENTITY = 10

DATE_JSONLD_CONFIDENCE = 0.85
DATE_TEXT_CONFIDENCE = 0.7
FIELD_CONFIDENCE = {
    "team_fee": 0.8,
    "level": 0.75,
    "games_guaranteed": 0.7,
    "address": 0.8,
    "venue_url": 0.6,
}
VENUE_JSONLD_CONFIDENCE = 0.82
VENUE_ROW_CONFIDENCE = 0.8


class SweepAbortedError(Exception):
    """Raised when a store failure stops a sweep; carries the counts gathered so far."""

    def __init__(self, code: str, message: str, partial: dict[str, Any]) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.partial = partial


@dataclass(slots=True)
class TargetSelection:
    targets: list[CanonicalEntity] = field(default_factory=list)
    skipped_recent: int = 0
    skipped_pending: int = 0


@dataclass(slots=True)
class SweepSummary:
    attempted: int = 0
    pages_fetched: int = 0
    inserted: int = 0
    inserted_by_kind: dict[str, int] = field(default_factory=lambda: {kind: 0 for kind in CANDIDATE_KINDS})
    skipped_recent: int = 0
    skipped_pending: int = 0
    skipped_duplicates: int = 0
    skipped_ineligible: int = 0
    run_id: str | None = None
    summary: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def clamp_limit(limit: int | None, *, default: int, maximum: int) -> int:
    if limit is None:
        limit = default
    return max(1, min(int(limit), maximum))


def select_targets(
    pool: Sequence[CanonicalEntity],
    pending_ids: set[str],
    *,
    now: datetime,
    cooldown_days: int,
    limit: int,
) -> TargetSelection:
    cutoff = now - timedelta(days=cooldown_days)
    selection = TargetSelection()
    for entity in pool:
        if len(selection.targets) >= limit:
            break
        if entity.id in pending_ids:
            selection.skipped_pending += 1
            continue
        if entity.last_swept_at is not None and entity.last_swept_at > cutoff:
            selection.skipped_recent += 1
            continue
        if not entity.seed_url or not entity.missing_fields():
            continue
        selection.targets.append(entity)
    return selection


def build_candidates(entity: CanonicalEntity, crawl: CrawlResult) -> list[Candidate]:
    """Turn one entity's crawl into candidates for the fields it is missing."""
    entity_type = entity.entity_type
    columns = ENTITY_COLUMNS[entity_type]
    blank = {column for column in columns if _is_blank(entity.fields.get(column))}
    candidates: list[Candidate] = []

    def wants(column: str) -> bool:
        return column in columns and column in blank

    field_values: dict[str, tuple[str, str]] = {}
    date_added = False
    venues = 0
    contacts = 0
    attributes: dict[str, Candidate] = {}

    for extraction in crawl.extractions:
        url = extraction.url
        for column in FIELD_CONFIDENCE:
            value = getattr(extraction, column)
            if value and wants(column) and column not in field_values:
                field_values[column] = (value, url)

        if not date_added and extraction.date_range is not None and (wants("start_date") or wants("end_date")):
            confidence = DATE_JSONLD_CONFIDENCE if extraction.date_range.source == "jsonld" else DATE_TEXT_CONFIDENCE
            candidates.append(
                date_candidate(entity_type, entity.id, extraction.date_range, source_url=url, confidence=confidence)
            )
            date_added = True

        if wants("venue") or wants("address"):
            if extraction.venue_name and venues < MAX_VENUES_PER_ENTITY:
                candidates.append(
                    venue_candidate(
                        entity_type,
                        entity.id,
                        venue_name=extraction.venue_name,
                        address_text=extraction.address,
                        venue_url=extraction.venue_url,
                        source_url=url,
                        confidence=VENUE_JSONLD_CONFIDENCE,
                    )
                )
                venues += 1
            for row in extraction.venues:
                if venues >= MAX_VENUES_PER_ENTITY:
                    break
                candidates.append(
                    venue_candidate(
                        entity_type,
                        entity.id,
                        venue_name=row.venue_name,
                        address_text=row.address_text,
                        venue_url=extraction.venue_url,
                        source_url=url,
                        confidence=VENUE_ROW_CONFIDENCE,
                        evidence_text=f"{row.venue_name or ''} {row.address_text}".strip(),
                    )
                )
                venues += 1

        for contact in extraction.contacts:
            if contacts >= MAX_CONTACTS_PER_ENTITY:
                break
            candidates.append(contact_candidate(entity_type, entity.id, contact, source_url=url))
            contacts += 1

        for hit in extraction.attributes:
            if not wants(hit.key):
                continue
            current = attributes.get(hit.key)
            if current is None or hit.confidence > (current.confidence or 0.0):
                attributes[hit.key] = attribute_hit_candidate(entity_type, entity.id, hit, url)

    for column, (value, url) in field_values.items():
        candidates.append(
            attribute_candidate(
                entity_type,
                entity.id,
                key=column,
                value=value,
                source_url=url,
                confidence=FIELD_CONFIDENCE[column],
            )
        )
    candidates.extend(list(attributes.values())[:MAX_ATTRIBUTES_PER_ENTITY])
    return candidates


class SweepOrchestrator:
    def __init__(
        self,
        repo: SweepRepository,
        fetcher: DiagnosticFetcher,
        settings: Settings,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repo = repo
        self.fetcher = fetcher
        self.settings = settings
        self.registry = SourceRegistry(repo)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run_sweep(
        self,
        limit: int | None = None,
        entity_type: str = "tournament",
        strategy: str | None = None,
        include_contacts: bool = True,
    ) -> SweepSummary:
        if entity_type not in ENTITY_TYPES:
            raise RepositoryValidationError(f"unknown entity type: {entity_type}")
        if strategy:
            try:
                strategy_for_url("", strategy)
            except ValueError as exc:
                raise RepositoryValidationError(str(exc)) from exc

        limit = clamp_limit(limit, default=self.settings.sweep_default_limit, maximum=self.settings.sweep_max_limit)
        now = self._clock()
        summary = SweepSummary()
        run: CrawlRun | None = None

        with tracer.start_as_current_span("sweep.run") as span:
            span.set_attribute("sweep.entity_type", entity_type)
            span.set_attribute("sweep.limit", limit)
            try:
                run = await self.repo.create_run(f"{entity_type}:limit={limit}", at=now)
                summary.run_id = run.id

                pool = await self.repo.list_sweep_pool(entity_type, min(MAX_POOL_SIZE, limit * POOL_FACTOR))
                pending = await self.repo.entities_with_pending(entity_type, [entity.id for entity in pool])
                selection = select_targets(
                    pool,
                    pending,
                    now=now,
                    cooldown_days=self.settings.sweep_cooldown_days,
                    limit=len(pool),
                )
                summary.skipped_pending = selection.skipped_pending
                summary.skipped_recent = selection.skipped_recent

                candidates: list[Candidate] = []
                attempted: list[CanonicalEntity] = []
                ineligible: list[CanonicalEntity] = []
                for entity in selection.targets:
                    if len(attempted) >= limit:
                        break
                    swept = await self._sweep_entity(run, entity, strategy, summary, now)
                    if swept is None:
                        ineligible.append(entity)
                        continue
                    attempted.append(entity)
                    candidates.extend(swept)

                if include_contacts:
                    covered = {candidate.entity_id for candidate in candidates if candidate.kind == "contact"}
                    contact_targets = [
                        entity
                        for entity in attempted
                        if entity.official_website_url and entity.missing_contact_fields() and entity.id not in covered
                    ]
                    candidates.extend(await self._enrich_contacts(contact_targets, strategy, summary))

                staged = await stage(self.repo, candidates)
                summary.inserted = staged.inserted
                summary.inserted_by_kind = dict(staged.inserted_by_kind)
                summary.skipped_duplicates = staged.skipped_duplicate

                await self.repo.stamp_swept(entity_type, [entity.id for entity in (*attempted, *ineligible)], at=now)
                await self.repo.finish_run(run.id, "success", at=self._clock())
            except RepositoryError as exc:
                await self._fail_run(run)
                code = (
                    SweepErrorKind.ATTRIBUTE_CONSTRAINT_OUTDATED.value
                    if isinstance(exc, RepositoryConstraintOutdatedError)
                    else "store_error"
                )
                logger.error("sweep aborted code=%s error=%s", code, exc)
                raise SweepAbortedError(code, str(exc), summary.as_dict()) from exc

            span.set_attribute("sweep.attempted", summary.attempted)
            span.set_attribute("sweep.inserted", summary.inserted)

        logger.info(
            "sweep finished entity_type=%s attempted=%s inserted=%s skipped_recent=%s skipped_pending=%s",
            entity_type,
            summary.attempted,
            summary.inserted,
            summary.skipped_recent,
            summary.skipped_pending,
        )
        return summary

    async def _sweep_entity(
        self,
        run: CrawlRun,
        entity: CanonicalEntity,
        strategy_name: str | None,
        summary: SweepSummary,
        now: datetime,
    ) -> list[Candidate] | None:
        seed_url = entity.seed_url or ""
        try:
            entry = await self.registry.ensure(seed_url, {"source_type": entity.entity_type})
        except RepositoryValidationError as exc:
            logger.info("sweep target skipped entity_id=%s reason=%s", entity.id, exc)
            summary.skipped_ineligible += 1
            return None
        if not is_eligible(entry, now):
            summary.skipped_ineligible += 1
            return None

        summary.attempted += 1
        strategy = strategy_for_url(entry.canonical_url, strategy_name)
        entry_summary: dict[str, Any] = {
            "entity_id": entity.id,
            "name": entity.name,
            "url": entry.canonical_url,
            "found": [],
            "pages_fetched": 0,
            "error_code": None,
        }
        summary.summary.append(entry_summary)

        try:
            crawl = await crawl_entity(
                self.fetcher,
                entry.canonical_url,
                strategy=strategy,
                wanted_fields=entity.missing_fields(),
                include_contacts=entity.entity_type == "assignor",
                max_pages=min(self.settings.crawl_max_pages, strategy.max_pages),
            )
        except SweepError as exc:
            entry_summary["error_code"] = exc.code
            logger.info("sweep target failed entity_id=%s code=%s message=%s", entity.id, exc.code, exc.message)
            record_target_failure(exc.code, entity_id=entity.id, http_status=exc.diagnostics.status)
            await self.registry.record_sweep(
                entry.id,
                exc.code,
                build_sweep_summary(exc.code, exc.message, exc.diagnostics, pages_fetched=0),
                sweep_log_payload(
                    source_url=entry.canonical_url,
                    diagnostics=exc.diagnostics,
                    error_code=exc.code,
                    message=exc.message,
                    extracted_count=0,
                ),
            )
            return []

        candidates = build_candidates(entity, crawl)
        found = sorted(crawl.covered_fields())
        summary.pages_fetched += crawl.pages_fetched
        entry_summary.update({"found": found, "pages_fetched": crawl.pages_fetched, "error_code": crawl.error_code})

        await self.repo.create_source_record(
            run_id=run.id,
            source_id=entry.id,
            entity_id=entity.id,
            raw_payload={
                "seed_url": entry.canonical_url,
                "strategy": strategy.name,
                "pages": [visit.url for visit in crawl.visits],
                "found": found,
                "candidates": len(candidates),
                "error_code": crawl.error_code,
            },
            confidence=max((candidate.confidence or 0.0 for candidate in candidates), default=None),
        )
        await self.registry.record_sweep(
            entry.id,
            crawl.error_code or "ok",
            build_sweep_summary(
                crawl.error_code,
                crawl.message or "ok",
                crawl.seed_diagnostics,
                pages_fetched=crawl.pages_fetched,
                found=found,
            ),
            sweep_log_payload(
                source_url=entry.canonical_url,
                diagnostics=crawl.seed_diagnostics,
                error_code=crawl.error_code,
                message=crawl.message,
                extracted_count=len(candidates),
            ),
        )
        return candidates

    async def _enrich_contacts(
        self,
        targets: Sequence[CanonicalEntity],
        strategy_name: str | None,
        summary: SweepSummary,
    ) -> list[Candidate]:
        if not targets:
            return []
        semaphore = asyncio.Semaphore(max(1, self.settings.contact_pool_width))
        jitter_min = max(0.0, self.settings.contact_jitter_min_seconds)
        jitter_max = max(jitter_min, self.settings.contact_jitter_max_seconds)

        async def worker(entity: CanonicalEntity) -> list[Candidate]:
            async with semaphore:
                await asyncio.sleep(random.uniform(jitter_min, jitter_max))
                website = entity.official_website_url or ""
                try:
                    crawl = await crawl_entity(
                        self.fetcher,
                        website,
                        strategy=strategy_for_url(website, strategy_name),
                        wanted_fields={"email"},
                        include_contacts=True,
                        max_pages=self.settings.crawl_max_pages,
                    )
                except SweepError as exc:
                    logger.info("contact enrichment failed entity_id=%s code=%s", entity.id, exc.code)
                    return []
                summary.pages_fetched += crawl.pages_fetched
                return [
                    contact_candidate(entity.entity_type, entity.id, contact, source_url=extraction.url)
                    for extraction in crawl.extractions
                    for contact in extraction.contacts
                ][:MAX_CONTACTS_PER_ENTITY]

        with tracer.start_as_current_span("sweep.contacts") as span:
            span.set_attribute("sweep.contact_targets", len(targets))
            results = await asyncio.gather(*(worker(entity) for entity in targets))
        return [candidate for batch in results for candidate in batch]

    async def _fail_run(self, run: CrawlRun | None) -> None:
        if run is None:
            return
        try:
            await self.repo.finish_run(run.id, "failed", at=self._clock())
        except RepositoryError as exc:
            logger.warning("could not mark crawl run failed run_id=%s error=%s", run.id, exc)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
