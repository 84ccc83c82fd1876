# tenant_access/tenancy/enumerator.py

from __future__ import annotations

import asyncio
import logging
import uuid

from tenant_access.core.errors import InvalidRoleState, StoreUnavailable
from tenant_access.core.roles import MembershipRole, RelationshipType, SiteRole
from tenant_access.tenancy.ports import AssociationStore
from tenant_access.tenancy.reader import TenantStoreReader
from tenant_access.tenancy.types import AccessibleTenant, RoleAssociation

logger = logging.getLogger(__name__)


def _is_admin_row(row: RoleAssociation) -> bool:
    try:
        return row.site_role == SiteRole.ADMINISTRATOR
    except InvalidRoleState:
        return False


class AccessibleTenantEnumerator:
    """
    Lists every tenant a principal can reach through any association store.

    Sources, in order (the first one to name a tenant sets its relationship_type):
      1. user_roles rows with role=administrator
      2. tenant_memberships rows
      3. profiles.tenant_id
      4. tenants.owner_id (garages the principal created)
    """

    def __init__(self, store: AssociationStore, reader: TenantStoreReader | None = None):
        self._store = store
        self._reader = reader or TenantStoreReader(store)

    async def enumerate(self, principal_id: uuid.UUID) -> list[AccessibleTenant]:
        role_rows, memberships, profile_tenant, owned = await asyncio.gather(
            self._reader.read_role_rows(principal_id),
            self._reader.read_memberships(principal_id),
            self._reader.read_profile_tenant(principal_id),
            self._reader.read_owned_tenant_ids(principal_id),
        )

        membership_roles: dict[uuid.UUID, MembershipRole] = {}
        for m in memberships:
            membership_roles.setdefault(m.tenant_id, m.role)

        # tenant id -> relationship, insertion ordered, first source wins
        candidates: dict[uuid.UUID, RelationshipType] = {}
        for row in role_rows:
            if row.tenant_id and _is_admin_row(row):
                candidates.setdefault(row.tenant_id, RelationshipType.ROLE)
        for m in memberships:
            candidates.setdefault(m.tenant_id, RelationshipType.MEMBERSHIP)
        if profile_tenant:
            candidates.setdefault(profile_tenant, RelationshipType.PROFILE)
        for tenant_id in owned:
            candidates.setdefault(tenant_id, RelationshipType.OWNER)

        if not candidates:
            return []

        try:
            tenants = await self._store.get_tenants(candidates.keys())
        except StoreUnavailable as e:
            logger.warning("tenant lookup unavailable while enumerating principal=%s: %s", principal_id, e)
            return []

        result: list[AccessibleTenant] = []
        for tenant_id, relationship in candidates.items():
            tenant = tenants.get(tenant_id)
            if tenant is None:
                logger.info("skipping dangling tenant=%s (%s) for principal=%s", tenant_id, relationship.value, principal_id)
                continue
            result.append(
                AccessibleTenant(
                    tenant=tenant,
                    relationship_type=relationship,
                    membership_role=membership_roles.get(tenant_id),
                )
            )

        logger.debug("principal=%s can reach %d tenant(s)", principal_id, len(result))
        return result

