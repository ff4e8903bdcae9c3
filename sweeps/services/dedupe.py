from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sweeps.services.candidates import CANDIDATE_KINDS, Candidate
from sweeps.services.repository import CandidateRepo

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StagePlan:
    to_insert: list[Candidate]
    skipped_duplicate: int


@dataclass(slots=True)
class StageResult:
    inserted: int = 0
    inserted_by_kind: dict[str, int] = field(default_factory=lambda: {kind: 0 for kind in CANDIDATE_KINDS})
    skipped_duplicate: int = 0


def plan_stage(new: Sequence[Candidate], existing_keys: Iterable[str]) -> StagePlan:
    """Collapse in-batch duplicates and drop candidates whose composite key is already persisted."""
    seen = set(existing_keys)
    to_insert: list[Candidate] = []
    skipped = 0
    for candidate in new:
        key = candidate.dedupe_key
        if key in seen:
            skipped += 1
            continue
        seen.add(key)
        to_insert.append(candidate)
    return StagePlan(to_insert=to_insert, skipped_duplicate=skipped)


async def stage(repo: CandidateRepo, candidates: Sequence[Candidate]) -> StageResult:
    if not candidates:
        return StageResult()

    entity_ids = sorted({candidate.entity_id for candidate in candidates})
    kinds = sorted({candidate.kind for candidate in candidates})
    existing = await repo.list_candidate_keys(entity_ids, kinds)
    plan = plan_stage(candidates, existing)

    inserted = await repo.insert_candidates(plan.to_insert)
    raced = len(plan.to_insert) - len(inserted)
    counts = Counter(candidate.kind for candidate in inserted)

    result = StageResult(
        inserted=len(inserted),
        skipped_duplicate=plan.skipped_duplicate + raced,
    )
    for kind, count in counts.items():
        result.inserted_by_kind[kind] = count
    logger.info(
        "candidates staged inserted=%s skipped_duplicate=%s raced=%s",
        result.inserted,
        result.skipped_duplicate,
        raced,
    )
    return result
