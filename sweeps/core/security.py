import hmac

from fastapi import Depends, Header, HTTPException, Request, status

from sweeps.core.auth import ADMIN_SCOPES, Principal, parse_scope_header
from sweeps.core.config import Settings, get_settings


async def get_admin_principal(
    request: Request,
    settings: Settings = Depends(get_settings),
    x_admin_scopes: str | None = Header(default=None, alias="X-Admin-Scopes"),
) -> Principal:
    if not settings.admin_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="admin secret is not configured",
        )

    provided = request.headers.get(settings.admin_secret_header)
    if not provided:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"admin auth requires {settings.admin_secret_header}",
        )
    if not hmac.compare_digest(provided.encode("utf-8"), settings.admin_secret.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin secret")

    requested = parse_scope_header(x_admin_scopes)
    scopes = set(ADMIN_SCOPES) & requested if requested else set(ADMIN_SCOPES)
    return Principal(subject="admin", scopes=scopes)
