from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

SOURCE_REVIEW_STATUSES = {
    "untested",
    "needs_review",
    "keep",
    "seasonal",
    "low_yield",
    "pdf_only",
    "js_only",
    "blocked_403",
    "deprecated",
    "dead",
    "blocked",
    "login_required",
    "paywalled",
    "duplicate_source",
}
TERMINAL_SOURCE_STATUSES = frozenset({"dead", "blocked", "login_required", "paywalled", "duplicate_source"})
SOURCE_RECORD_STATUSES = {"needs_review", "approved", "rejected", "blocked"}
CRAWL_RUN_STATUSES = {"running", "success", "failed"}

ENTITY_TYPES = ("tournament", "assignor")
ENRICHABLE_FIELDS: dict[str, tuple[str, ...]] = {
    "tournament": ("team_fee", "level", "start_date", "end_date", "venue", "address"),
    "assignor": ("email", "phone"),
}
CONTACT_FIELDS: dict[str, tuple[str, ...]] = {
    "tournament": ("tournament_director_email", "referee_contact_email"),
    "assignor": ("email", "phone"),
}
ENTITY_COLUMNS: dict[str, frozenset[str]] = {
    "tournament": frozenset(
        {
            "team_fee",
            "level",
            "games_guaranteed",
            "start_date",
            "end_date",
            "venue",
            "address",
            "venue_url",
            "tournament_director",
            "tournament_director_email",
            "referee_contact",
            "referee_contact_email",
            "cash_at_field",
            "cash_tournament",
            "referee_food",
            "facilities",
            "referee_tents",
            "travel_lodging",
            "ref_game_schedule",
            "ref_parking",
            "ref_parking_cost",
            "mentors",
            "assigned_appropriately",
        }
    ),
    "assignor": frozenset({"email", "phone", "address"}),
}
DATE_COLUMNS = frozenset({"start_date", "end_date"})
BOOL_COLUMNS = frozenset({"cash_at_field", "cash_tournament"})


@dataclass(slots=True)
class SourceRegistryEntry:
    id: str
    canonical_url: str
    normalized_url: str
    host: str
    source_type: str | None = None
    sport: str | None = None
    state: str | None = None
    is_active: bool = True
    review_status: str = "untested"
    ignore_until: datetime | None = None
    last_swept_at: datetime | None = None
    last_sweep_status: str | None = None
    last_sweep_summary: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.review_status in TERMINAL_SOURCE_STATUSES


@dataclass(slots=True)
class SourceSweepLog:
    id: str
    source_id: str
    payload: dict[str, Any]
    created_at: datetime | None = None


@dataclass(slots=True)
class CrawlRun:
    id: str
    started_at: datetime
    status: str = "running"
    query_or_target: str | None = None
    source_id: str | None = None
    finished_at: datetime | None = None


@dataclass(slots=True)
class SourceRecord:
    id: str
    run_id: str
    source_id: str
    entity_id: str
    raw_payload: dict[str, Any]
    confidence: float | None = None
    review_status: str = "needs_review"


@dataclass(slots=True)
class CanonicalEntity:
    id: str
    entity_type: str
    name: str | None = None
    official_website_url: str | None = None
    source_url: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    last_swept_at: datetime | None = None
    enrichment_skip: bool = False

    @property
    def seed_url(self) -> str | None:
        return self.official_website_url or self.source_url

    def missing_fields(self) -> list[str]:
        return [name for name in ENRICHABLE_FIELDS.get(self.entity_type, ()) if _is_blank(self.fields.get(name))]

    def missing_contact_fields(self) -> list[str]:
        return [name for name in CONTACT_FIELDS.get(self.entity_type, ()) if _is_blank(self.fields.get(name))]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
