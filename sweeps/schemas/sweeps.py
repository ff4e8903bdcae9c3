from typing import Literal

from pydantic import BaseModel, Field

EntityType = Literal["tournament", "assignor"]
StrategyName = Literal["default", "usssa"]


class SweepTargetOut(BaseModel):
    entity_id: str
    name: str | None = None
    url: str
    found: list[str] = Field(default_factory=list)
    pages_fetched: int = 0
    error_code: str | None = None


class SweepSummaryOut(BaseModel):
    ok: bool = True
    attempted: int
    pages_fetched: int
    inserted: int
    inserted_by_kind: dict[str, int] = Field(default_factory=dict)
    skipped_recent: int
    skipped_pending: int
    skipped_duplicates: int
    skipped_ineligible: int
    run_id: str | None = None
    summary: list[SweepTargetOut] = Field(default_factory=list)
