from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sweeps.api.deps import get_source_registry
from sweeps.core.security import get_admin_principal
from sweeps.schemas.sources import (
    SourceCreateRequest,
    SourceIgnoreRequest,
    SourceLogOut,
    SourceOut,
    SourceStatusPatchRequest,
)
from sweeps.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

router = APIRouter()


@router.post("", response_model=SourceOut)
async def ensure_source(
    payload: SourceCreateRequest,
    principal=Depends(get_admin_principal),
    registry=Depends(get_source_registry),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        entry = await registry.ensure(
            payload.url,
            {"source_type": payload.source_type, "sport": payload.sport, "state": payload.state},
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SourceOut(**asdict(entry))


@router.get("/{source_id}", response_model=SourceOut)
async def get_source(
    source_id: str,
    principal=Depends(get_admin_principal),
    registry=Depends(get_source_registry),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        entry = await registry.get(source_id)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SourceOut(**asdict(entry))


@router.patch("/{source_id}/status", response_model=SourceOut)
async def patch_source_status(
    source_id: str,
    payload: SourceStatusPatchRequest,
    principal=Depends(get_admin_principal),
    registry=Depends(get_source_registry),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        entry = await registry.set_status(source_id, payload.review_status)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SourceOut(**asdict(entry))


@router.post("/{source_id}/ignore", response_model=SourceOut)
async def ignore_source(
    source_id: str,
    payload: SourceIgnoreRequest | None = None,
    principal=Depends(get_admin_principal),
    registry=Depends(get_source_registry),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    days = payload.days if payload is not None else SourceIgnoreRequest().days
    try:
        entry = await registry.ignore_for(source_id, days)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SourceOut(**asdict(entry))


@router.get("/{source_id}/logs", response_model=list[SourceLogOut])
async def list_source_logs(
    source_id: str,
    principal=Depends(get_admin_principal),
    registry=Depends(get_source_registry),
    limit: int = Query(default=20, ge=1, le=50),
) -> list[SourceLogOut]:
    try:
        principal.require_scopes({"sources:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        logs = await registry.list_logs(source_id, limit)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [SourceLogOut(**asdict(log)) for log in logs]
