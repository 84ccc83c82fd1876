import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from tenant_access.core.config import settings
from tenant_access.core.security import bearer_scheme, decode_access_token
from tenant_access.tenancy.domain import DomainContext
from tenant_access.tenancy.service import TenantAccessService

ENTRY_POINTS = {"owner", "staff"}


async def get_current_principal_id(
    creds: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> uuid.UUID:
    return decode_access_token(creds.credentials)


def get_access_service(request: Request) -> TenantAccessService:
    service = getattr(request.app.state, "access_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tenant access service is not configured",
        )
    return service


async def get_domain_context(
    request: Request,
    x_tenant_slug: Optional[str] = Header(default=None, alias="X-Tenant-Slug"),
    x_entry_point: Optional[str] = Header(default=None, alias="X-Entry-Point"),
) -> DomainContext:
    """
    Which login the request came through.

    X-Tenant-Slug names a garage's staff login directly. X-Entry-Point
    ("owner" | "staff") covers clients served from a single host. Otherwise
    the Host header is parsed against BASE_DOMAIN.
    """
    if x_tenant_slug and x_tenant_slug.strip():
        return DomainContext.staff(x_tenant_slug)

    if x_entry_point:
        entry = x_entry_point.strip().lower()
        if entry not in ENTRY_POINTS:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"X-Entry-Point must be one of: {', '.join(sorted(ENTRY_POINTS))}",
            )
        return DomainContext.staff() if entry == "staff" else DomainContext.owner()

    return DomainContext.from_host(request.headers.get("host"), settings.BASE_DOMAIN)
