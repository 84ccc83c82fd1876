# tenant_access/api/v1/access.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from tenant_access.api.deps.access import (
    get_access_service,
    get_current_principal_id,
    get_domain_context,
)
from tenant_access.core.errors import ResolutionAbandoned, ResolutionTimeout, TenantNotAccessible
from tenant_access.schemas.access import (
    AccessibleTenantOut,
    ActiveTenantOut,
    AssociationReportOut,
    RouteDecisionOut,
    RouteRequest,
    SwitchTenantRequest,
)
from tenant_access.tenancy.domain import DomainContext
from tenant_access.tenancy.router import RouteDecision
from tenant_access.tenancy.service import TenantAccessService
from tenant_access.tenancy.types import AccessibleTenant

router = APIRouter(prefix="/access", tags=["access"])


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def _tenant_out(t: AccessibleTenant) -> AccessibleTenantOut:
    return AccessibleTenantOut(
        id=t.id,
        name=t.tenant.name,
        slug=t.slug,
        address=t.tenant.address,
        email=t.tenant.email,
        phone=t.tenant.phone,
        relationship_type=t.relationship_type.value,
        membership_role=t.membership_role.value if t.membership_role else None,
    )


def _decision_out(d: RouteDecision) -> RouteDecisionOut:
    return RouteDecisionOut(
        kind=d.kind.value,
        path=d.path,
        tenant_id=d.tenant_id,
        navigate=d.navigate,
        sign_out=d.sign_out,
        persist_tenant=d.persist_tenant,
        source=d.source,
        reason=d.reason,
    )


# ---------------------------------------------------------
# Resolution
# ---------------------------------------------------------
@router.get("/tenant", response_model=ActiveTenantOut)
async def get_active_tenant(
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    service: TenantAccessService = Depends(get_access_service),
):
    try:
        resolution = await service.resolve(principal_id)
    except ResolutionTimeout as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    except ResolutionAbandoned as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ActiveTenantOut(
        tenant_id=resolution.tenant_id,
        source=resolution.source.value if resolution.source else None,
    )


@router.get("/tenants", response_model=List[AccessibleTenantOut])
async def list_accessible_tenants(
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    service: TenantAccessService = Depends(get_access_service),
):
    tenants = await service.get_accessible_tenants(principal_id)
    return [_tenant_out(t) for t in tenants]


# ---------------------------------------------------------
# Routing
# ---------------------------------------------------------
@router.post("/route", response_model=RouteDecisionOut)
async def route(
    payload: RouteRequest,
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    context: DomainContext = Depends(get_domain_context),
    service: TenantAccessService = Depends(get_access_service),
):
    decision = await service.decide_route(principal_id, context, payload.path)
    return _decision_out(decision)


# ---------------------------------------------------------
# Session triggers
# ---------------------------------------------------------
@router.post("/refresh", status_code=status.HTTP_204_NO_CONTENT)
async def refresh(
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    service: TenantAccessService = Depends(get_access_service),
):
    service.refresh(principal_id)


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    service: TenantAccessService = Depends(get_access_service),
):
    service.sign_out(principal_id)


@router.post("/switch", response_model=AccessibleTenantOut)
async def switch_tenant(
    payload: SwitchTenantRequest,
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    service: TenantAccessService = Depends(get_access_service),
):
    try:
        target = await service.switch_tenant(principal_id, payload.tenant_id)
    except TenantNotAccessible as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return _tenant_out(target)


@router.get("/diagnostics", response_model=AssociationReportOut)
async def diagnostics(
    principal_id: uuid.UUID = Depends(get_current_principal_id),
    service: TenantAccessService = Depends(get_access_service),
):
    report = await service.diagnose(principal_id)
    return AssociationReportOut.model_validate(report)
