from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

SourceReviewStatus = Literal[
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
]


class SourceCreateRequest(BaseModel):
    url: str = Field(min_length=1)
    source_type: str | None = None
    sport: str | None = None
    state: str | None = None


class SourceOut(BaseModel):
    id: str
    canonical_url: str
    normalized_url: str
    host: str
    source_type: str | None = None
    sport: str | None = None
    state: str | None = None
    is_active: bool
    review_status: SourceReviewStatus
    ignore_until: datetime | None = None
    last_swept_at: datetime | None = None
    last_sweep_status: str | None = None
    last_sweep_summary: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SourceStatusPatchRequest(BaseModel):
    review_status: SourceReviewStatus


class SourceIgnoreRequest(BaseModel):
    days: int = Field(default=7, ge=1, le=365)


class SourceLogOut(BaseModel):
    id: str
    source_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
