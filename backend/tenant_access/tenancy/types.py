# tenant_access/tenancy/types.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from tenant_access.core.roles import MembershipRole, RelationshipType, SiteRole


@dataclass(frozen=True)
class TenantRecord:
    id: uuid.UUID
    name: str
    slug: str
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    owner_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RoleAssociation:
    id: uuid.UUID
    role: str  # raw stored value; see site_role
    tenant_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    @property
    def site_role(self) -> SiteRole:
        return SiteRole.parse(self.role)


@dataclass(frozen=True)
class Membership:
    tenant_id: uuid.UUID
    role: MembershipRole
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class AssociationSnapshot:
    """What the three stores said about one principal in one pass."""

    principal_id: uuid.UUID
    profile_tenant_id: Optional[uuid.UUID] = None
    role: Optional[RoleAssociation] = None
    memberships: tuple[Membership, ...] = ()
    # names of the stores that failed to answer
    unavailable: frozenset[str] = field(default_factory=frozenset)

    @property
    def role_tenant_id(self) -> Optional[uuid.UUID]:
        return self.role.tenant_id if self.role else None

    def membership_for(self, tenant_id: uuid.UUID) -> Optional[Membership]:
        for m in self.memberships:
            if m.tenant_id == tenant_id:
                return m
        return None


@dataclass(frozen=True, eq=False)
class AccessibleTenant:
    """
    A tenant the principal can reach. Identity is the tenant id only:
    the same garage reached through two stores is one AccessibleTenant.
    """

    tenant: TenantRecord
    relationship_type: RelationshipType
    membership_role: Optional[MembershipRole] = None

    @property
    def id(self) -> uuid.UUID:
        return self.tenant.id

    @property
    def slug(self) -> str:
        return self.tenant.slug

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccessibleTenant):
            return NotImplemented
        return self.tenant.id == other.tenant.id

    def __hash__(self) -> int:
        return hash(self.tenant.id)


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID
    role: SiteRole
