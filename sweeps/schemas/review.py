from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from sweeps.schemas.sweeps import EntityType

CandidateKind = Literal["attribute", "venue", "date", "contact"]


class CandidateOut(BaseModel):
    id: str
    kind: CandidateKind
    entity_type: EntityType
    entity_id: str
    field_key: str
    value: str
    details: dict[str, Any] = Field(default_factory=dict)
    source_url: str | None = None
    confidence: float | None = None
    evidence_text: str | None = None
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    rejected_reason: str | None = None


class ApplyRequest(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    candidate_ids: list[str] = Field(min_length=1)


class ApplyOut(BaseModel):
    ok: bool = True
    updated_fields: list[str] = Field(default_factory=list)
    applied: dict[str, int] = Field(default_factory=dict)


class DecisionRequest(BaseModel):
    candidate_ids: list[str] = Field(min_length=1)
    reason: str | None = None


class RejectOut(BaseModel):
    ok: bool = True
    rejected: int


class BlockOut(BaseModel):
    ok: bool = True
    rejected: int
    blocked_sources: list[str] = Field(default_factory=list)
