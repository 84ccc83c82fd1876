# tenant_access/tenancy/ports.py
"""
I/O ports used by the resolution engine.

Every method may raise StoreUnavailable. Implementations:
  - tenant_access.crud.associations.SqlAssociationStore (production)
  - tests/fakes.py InMemoryAssociationStore (tests)
"""

from __future__ import annotations

import uuid
from typing import Callable, Iterable, Optional, Protocol

from tenant_access.core.roles import MembershipRole
from tenant_access.tenancy.router import RouteDecision
from tenant_access.tenancy.types import Membership, RoleAssociation, TenantRecord


class AssociationStore(Protocol):
    # --- association reads ---
    async def read_profile_tenant(self, principal_id: uuid.UUID) -> Optional[uuid.UUID]: ...

    async def read_role_rows(self, principal_id: uuid.UUID) -> list[RoleAssociation]: ...

    async def read_memberships(self, principal_id: uuid.UUID) -> list[Membership]: ...

    # --- tenant directory ---
    async def get_tenant(self, tenant_id: uuid.UUID) -> Optional[TenantRecord]: ...

    async def get_tenants(self, tenant_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, TenantRecord]: ...

    async def get_tenant_by_slug(self, slug: str) -> Optional[TenantRecord]: ...

    async def first_tenant(self) -> Optional[TenantRecord]: ...

    async def read_owned_tenant_ids(self, principal_id: uuid.UUID) -> list[uuid.UUID]: ...

    # --- self-heal writes ---
    async def write_profile_tenant(self, principal_id: uuid.UUID, tenant_id: uuid.UUID) -> None: ...

    async def write_role_tenant(self, role_id: uuid.UUID, tenant_id: uuid.UUID) -> None: ...

    async def add_membership(
        self, principal_id: uuid.UUID, tenant_id: uuid.UUID, role: MembershipRole
    ) -> None: ...


# Performs the actual UI transition for a decision. Never called for
# non-navigating decisions.
Navigator = Callable[[RouteDecision], None]
