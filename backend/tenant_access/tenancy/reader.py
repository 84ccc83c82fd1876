# tenant_access/tenancy/reader.py
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from tenant_access.core.errors import StoreUnavailable
from tenant_access.tenancy.ports import AssociationStore
from tenant_access.tenancy.types import AssociationSnapshot, Membership, RoleAssociation

logger = logging.getLogger(__name__)


def _newest_first(memberships: list[Membership]) -> list[Membership]:
    # rows without a timestamp sort last
    return sorted(memberships, key=lambda m: (m.created_at is not None, m.created_at), reverse=True)


def pick_active_role(rows: list[RoleAssociation]) -> Optional[RoleAssociation]:
    """
    The schema allows several user_roles rows per principal; the product treats
    one as active: the newest row carrying a tenant id, else the newest row.
    Rows are expected newest first.
    """
    if not rows:
        return None
    for row in rows:
        if row.tenant_id is not None:
            return row
    return rows[0]


class TenantStoreReader:
    """
    Side-effect-free reads over the three association stores.

    StoreUnavailable is caught here and reported as "source absent".
    """

    def __init__(self, store: AssociationStore):
        self._store = store

    async def read_profile_tenant(self, principal_id: uuid.UUID) -> Optional[uuid.UUID]:
        try:
            return await self._store.read_profile_tenant(principal_id)
        except StoreUnavailable as e:
            logger.warning("profile read unavailable for principal=%s: %s", principal_id, e)
            return None

    async def read_role_rows(self, principal_id: uuid.UUID) -> list[RoleAssociation]:
        try:
            return list(await self._store.read_role_rows(principal_id))
        except StoreUnavailable as e:
            logger.warning("role read unavailable for principal=%s: %s", principal_id, e)
            return []

    async def read_role_association(
        self, principal_id: uuid.UUID, strict: bool = False
    ) -> Optional[RoleAssociation]:
        """
        With strict=True a role store failure raises StoreUnavailable instead
        of reading as "no role row".
        """
        if strict:
            return pick_active_role(list(await self._store.read_role_rows(principal_id)))
        return pick_active_role(await self.read_role_rows(principal_id))

    async def read_memberships(self, principal_id: uuid.UUID) -> list[Membership]:
        try:
            rows = list(await self._store.read_memberships(principal_id))
        except StoreUnavailable as e:
            logger.warning("membership read unavailable for principal=%s: %s", principal_id, e)
            return []
        return _newest_first(rows)

    async def read_owned_tenant_ids(self, principal_id: uuid.UUID) -> list[uuid.UUID]:
        try:
            return list(await self._store.read_owned_tenant_ids(principal_id))
        except StoreUnavailable as e:
            logger.warning("owned tenant read unavailable for principal=%s: %s", principal_id, e)
            return []

    async def read_snapshot(self, principal_id: uuid.UUID) -> AssociationSnapshot:
        """
        Issue the three reads concurrently and collect the answers.
        """
        results = await asyncio.gather(
            self._store.read_profile_tenant(principal_id),
            self._store.read_role_rows(principal_id),
            self._store.read_memberships(principal_id),
            return_exceptions=True,
        )

        unavailable: set[str] = set()
        for name, result in zip(("profiles", "user_roles", "tenant_memberships"), results):
            if isinstance(result, StoreUnavailable):
                logger.warning("%s read unavailable for principal=%s: %s", name, principal_id, result)
                unavailable.add(name)
            elif isinstance(result, BaseException):
                raise result

        profile_tenant, role_rows, memberships = (
            None if isinstance(r, BaseException) else r for r in results
        )
        memberships = _newest_first(list(memberships or []))

        return AssociationSnapshot(
            principal_id=principal_id,
            profile_tenant_id=profile_tenant,
            role=pick_active_role(list(role_rows or [])),
            memberships=tuple(memberships),
            unavailable=frozenset(unavailable),
        )
