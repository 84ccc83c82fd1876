from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ActiveTenantOut(BaseModel):
    tenant_id: Optional[UUID] = None
    source: Optional[str] = None


class AccessibleTenantOut(BaseModel):
    id: UUID
    name: str
    slug: str
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    relationship_type: str
    membership_role: Optional[str] = None


class RouteRequest(BaseModel):
    path: str = Field(default="/", max_length=2048)


class RouteDecisionOut(BaseModel):
    kind: str
    path: str
    tenant_id: Optional[UUID] = None
    navigate: bool
    sign_out: bool = False
    persist_tenant: bool = False
    source: Optional[str] = None
    reason: Optional[str] = None


class SwitchTenantRequest(BaseModel):
    tenant_id: UUID


class AssociationReportOut(BaseModel):
    principal_id: UUID
    role: Optional[str] = None
    role_valid: bool
    profile_tenant_id: Optional[UUID] = None
    role_tenant_id: Optional[UUID] = None
    membership_tenant_ids: List[UUID] = []
    dangling_tenant_ids: List[UUID] = []
    unavailable: List[str] = []
    resolved_tenant_id: Optional[UUID] = None
    resolved_source: Optional[str] = None
    pending_repairs: List[str] = []
    notes: List[str] = []
    consistent: bool

    model_config = {"from_attributes": True}
