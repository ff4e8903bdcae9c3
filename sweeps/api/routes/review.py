from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sweeps.api.deps import get_review_service
from sweeps.core.security import get_admin_principal
from sweeps.schemas.review import ApplyOut, ApplyRequest, BlockOut, CandidateOut, DecisionRequest, RejectOut
from sweeps.schemas.sweeps import EntityType
from sweeps.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

router = APIRouter()


@router.get("/candidates", response_model=list[CandidateOut])
async def list_candidates(
    principal=Depends(get_admin_principal),
    service=Depends(get_review_service),
    entity_type: EntityType | None = Query(default=None),
    entity_id: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[CandidateOut]:
    try:
        principal.require_scopes({"review:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await service.list_pending(entity_type, entity_id, limit=limit)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [CandidateOut(**asdict(row)) for row in rows]


@router.post("/apply", response_model=ApplyOut)
async def apply_candidates(
    payload: ApplyRequest,
    principal=Depends(get_admin_principal),
    service=Depends(get_review_service),
) -> ApplyOut:
    try:
        principal.require_scopes({"review:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await service.apply(payload.entity_type, payload.entity_id, payload.candidate_ids)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return ApplyOut(updated_fields=result.updated_fields, applied=result.applied)


@router.post("/reject", response_model=RejectOut)
async def reject_candidates(
    payload: DecisionRequest,
    principal=Depends(get_admin_principal),
    service=Depends(get_review_service),
) -> RejectOut:
    try:
        principal.require_scopes({"review:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rejected = await service.reject(payload.candidate_ids, payload.reason)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return RejectOut(rejected=rejected)


@router.post("/block", response_model=BlockOut)
async def block_candidates(
    payload: DecisionRequest,
    principal=Depends(get_admin_principal),
    service=Depends(get_review_service),
) -> BlockOut:
    try:
        principal.require_scopes({"review:write", "sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await service.block(payload.candidate_ids, payload.reason)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return BlockOut(rejected=result.rejected, blocked_sources=result.blocked_sources)
