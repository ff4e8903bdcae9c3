from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from sweeps.api.deps import get_orchestrator
from sweeps.core.security import get_admin_principal
from sweeps.schemas.sweeps import EntityType, StrategyName, SweepSummaryOut
from sweeps.services.orchestrator import SweepAbortedError
from sweeps.services.repository import RepositoryUnavailableError, RepositoryValidationError

router = APIRouter()


@router.post("", response_model=SweepSummaryOut)
async def run_sweep(
    principal=Depends(get_admin_principal),
    orchestrator=Depends(get_orchestrator),
    limit: int | None = Query(default=None),
    entity_type: EntityType = Query(default="tournament"),
    strategy: StrategyName | None = Query(default=None),
    include_contacts: bool = Query(default=True),
):
    try:
        principal.require_scopes({"sweeps:run"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await orchestrator.run_sweep(
            limit=limit,
            entity_type=entity_type,
            strategy=strategy,
            include_contacts=include_contacts,
        )
    except SweepAbortedError as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": exc.code, "detail": exc.message, **exc.partial},
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SweepSummaryOut(**result.as_dict())
