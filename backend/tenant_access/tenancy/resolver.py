# tenant_access/tenancy/resolver.py
"""
Picks one authoritative tenant per principal and repairs the lagging stores.

Priority is an ordered tuple of strategies; the first one returning a tenant id
wins. Self-heal writes happen only after every read and after the decision.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from tenant_access.core.config import Settings
from tenant_access.core.errors import InvalidRoleState, StoreUnavailable
from tenant_access.core.roles import MembershipRole, SiteRole
from tenant_access.tenancy.ports import AssociationStore
from tenant_access.tenancy.reader import TenantStoreReader
from tenant_access.tenancy.types import AssociationSnapshot

logger = logging.getLogger(__name__)


class ResolutionSource(str, enum.Enum):
    ROLE_ASSOCIATION = "role_association"
    PROFILE = "profile"
    MEMBERSHIP = "membership"
    DEFAULT_TENANT = "default_tenant"
    ANY_TENANT = "any_tenant"


class RepairTarget(str, enum.Enum):
    PROFILE = "profiles"
    ROLE = "user_roles"
    MEMBERSHIP = "tenant_memberships"


@dataclass(frozen=True)
class DefaultTenantPolicy:
    """Where to send principals that have no usable association."""

    slug: Optional[str] = None
    allow_any_tenant: bool = True

    @classmethod
    def from_settings(cls, s: Settings) -> "DefaultTenantPolicy":
        return cls(slug=s.DEFAULT_TENANT_SLUG, allow_any_tenant=s.ALLOW_ANY_TENANT_FALLBACK)


@dataclass(frozen=True)
class Resolution:
    principal_id: uuid.UUID
    tenant_id: Optional[uuid.UUID]
    source: Optional[ResolutionSource] = None
    repairs: tuple[RepairTarget, ...] = ()
    # some store could not be read in this pass
    degraded: bool = False

    @property
    def found(self) -> bool:
        return self.tenant_id is not None


# ---------------------------------------------------------
# Strategies
# ---------------------------------------------------------
class TenantLookup:
    """
    Tenant directory lookups for one resolution pass.

    `exists` answers True, False, or None when the directory could not be
    reached. A None answer marks the pass as uncertain.
    """

    def __init__(self, store: AssociationStore):
        self.store = store
        self.uncertain = False

    async def exists(self, tenant_id: uuid.UUID) -> Optional[bool]:
        try:
            return await self.store.get_tenant(tenant_id) is not None
        except StoreUnavailable as e:
            logger.warning("tenant lookup unavailable for tenant=%s: %s", tenant_id, e)
            self.uncertain = True
            return None


StrategyFn = Callable[
    [AssociationSnapshot, TenantLookup, DefaultTenantPolicy],
    Awaitable[Optional[uuid.UUID]],
]


@dataclass(frozen=True)
class ResolutionStrategy:
    source: ResolutionSource
    pick: StrategyFn


async def _from_role_association(snapshot, lookup, policy) -> Optional[uuid.UUID]:
    tenant_id = snapshot.role_tenant_id
    if not tenant_id:
        return None
    found = await lookup.exists(tenant_id)
    if found:
        return tenant_id
    if found is False:
        logger.info("user_roles.tenant_id=%s for principal=%s is dangling", tenant_id, snapshot.principal_id)
    return None


async def _from_profile(snapshot, lookup, policy) -> Optional[uuid.UUID]:
    tenant_id = snapshot.profile_tenant_id
    if not tenant_id:
        return None
    found = await lookup.exists(tenant_id)
    if found:
        return tenant_id
    if found is False:
        logger.info("profiles.tenant_id=%s for principal=%s is dangling", tenant_id, snapshot.principal_id)
    return None


async def _from_latest_membership(snapshot, lookup, policy) -> Optional[uuid.UUID]:
    # memberships are newest first
    for m in snapshot.memberships:
        if await lookup.exists(m.tenant_id):
            return m.tenant_id
    return None


async def _from_default_tenant(snapshot, lookup, policy) -> Optional[uuid.UUID]:
    if not policy.slug:
        return None
    try:
        tenant = await lookup.store.get_tenant_by_slug(policy.slug)
    except StoreUnavailable as e:
        logger.warning("default tenant lookup unavailable: %s", e)
        lookup.uncertain = True
        return None
    if tenant is None:
        logger.info("default tenant slug=%r does not exist", policy.slug)
        return None
    return tenant.id


async def _from_any_tenant(snapshot, lookup, policy) -> Optional[uuid.UUID]:
    if not policy.allow_any_tenant:
        return None
    try:
        tenant = await lookup.store.first_tenant()
    except StoreUnavailable as e:
        logger.warning("any-tenant lookup unavailable: %s", e)
        lookup.uncertain = True
        return None
    return tenant.id if tenant else None


DEFAULT_STRATEGIES: tuple[ResolutionStrategy, ...] = (
    ResolutionStrategy(ResolutionSource.ROLE_ASSOCIATION, _from_role_association),
    ResolutionStrategy(ResolutionSource.PROFILE, _from_profile),
    ResolutionStrategy(ResolutionSource.MEMBERSHIP, _from_latest_membership),
    ResolutionStrategy(ResolutionSource.DEFAULT_TENANT, _from_default_tenant),
    ResolutionStrategy(ResolutionSource.ANY_TENANT, _from_any_tenant),
)


# ---------------------------------------------------------
# Self-heal planning
# ---------------------------------------------------------
def plan_repairs(snapshot: AssociationSnapshot, tenant_id: uuid.UUID) -> list[RepairTarget]:
    """
    Which stores disagree with tenant_id.

    A store that failed to answer in this pass is never repaired: we don't
    know what it holds and it may outrank the value we resolved.
    """
    plan: list[RepairTarget] = []

    if RepairTarget.ROLE.value not in snapshot.unavailable:
        if snapshot.role is not None and snapshot.role.tenant_id != tenant_id:
            plan.append(RepairTarget.ROLE)

    if RepairTarget.PROFILE.value not in snapshot.unavailable:
        if snapshot.profile_tenant_id != tenant_id:
            plan.append(RepairTarget.PROFILE)

    if RepairTarget.MEMBERSHIP.value not in snapshot.unavailable:
        if snapshot.membership_for(tenant_id) is None:
            plan.append(RepairTarget.MEMBERSHIP)

    return plan


def _membership_role_for(snapshot: AssociationSnapshot) -> MembershipRole:
    if snapshot.role is None:
        return MembershipRole.MEMBER
    try:
        site_role = snapshot.role.site_role
    except InvalidRoleState:
        return MembershipRole.MEMBER
    if site_role == SiteRole.ADMINISTRATOR:
        return MembershipRole.ADMINISTRATOR
    return MembershipRole.MEMBER


class ConflictResolver:
    def __init__(
        self,
        store: AssociationStore,
        policy: DefaultTenantPolicy | None = None,
        strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES,
        reader: TenantStoreReader | None = None,
    ):
        self._store = store
        self._policy = policy or DefaultTenantPolicy()
        self._strategies = tuple(strategies)
        self._reader = reader or TenantStoreReader(store)

    @property
    def reader(self) -> TenantStoreReader:
        return self._reader

    async def pick(
        self, snapshot: AssociationSnapshot
    ) -> tuple[Optional[uuid.UUID], Optional[ResolutionSource], bool]:
        """
        Returns (tenant_id, source, uncertain). `uncertain` is set when a
        higher-ranked candidate could not be checked against the tenant
        directory, so the winner may not be the real answer.
        """
        lookup = TenantLookup(self._store)
        for strategy in self._strategies:
            tenant_id = await strategy.pick(snapshot, lookup, self._policy)
            if tenant_id is not None:
                return tenant_id, strategy.source, lookup.uncertain
        return None, None, lookup.uncertain

    async def resolve(self, principal_id: uuid.UUID) -> Resolution:
        """
        One resolution pass: read everything, decide, then write back.

        Nothing is written back when the tenant directory failed for a
        higher-ranked candidate.
        """
        snapshot = await self._reader.read_snapshot(principal_id)
        tenant_id, source, uncertain = await self.pick(snapshot)
        degraded = uncertain or bool(snapshot.unavailable)

        if tenant_id is None:
            logger.info("no tenant found for principal=%s", principal_id)
            return Resolution(principal_id=principal_id, tenant_id=None, degraded=degraded)

        logger.debug("principal=%s resolved tenant=%s via %s", principal_id, tenant_id, source.value)
        if uncertain:
            logger.warning(
                "tenant directory unavailable while resolving principal=%s; skipping self-heal",
                principal_id,
            )
            repairs: tuple[RepairTarget, ...] = ()
        else:
            repairs = await self.heal(snapshot, tenant_id)
        return Resolution(
            principal_id=principal_id,
            tenant_id=tenant_id,
            source=source,
            repairs=repairs,
            degraded=degraded,
        )

    async def adopt(self, principal_id: uuid.UUID, tenant_id: uuid.UUID) -> tuple[RepairTarget, ...]:
        """
        Make tenant_id the principal's active tenant in every store
        (explicit selection or tenant switch).
        """
        snapshot = await self._reader.read_snapshot(principal_id)
        return await self.heal(snapshot, tenant_id)

    async def heal(self, snapshot: AssociationSnapshot, tenant_id: uuid.UUID) -> tuple[RepairTarget, ...]:
        """
        Best-effort writeback. Returns the repairs that were written.
        A failed write is logged and left for the next pass.
        """
        principal_id = snapshot.principal_id
        done: list[RepairTarget] = []

        for target in plan_repairs(snapshot, tenant_id):
            try:
                if target is RepairTarget.ROLE:
                    await self._store.write_role_tenant(snapshot.role.id, tenant_id)
                elif target is RepairTarget.PROFILE:
                    await self._store.write_profile_tenant(principal_id, tenant_id)
                else:
                    await self._store.add_membership(principal_id, tenant_id, _membership_role_for(snapshot))
            except StoreUnavailable as e:
                logger.warning(
                    "self-heal of %s failed for principal=%s tenant=%s: %s",
                    target.value,
                    principal_id,
                    tenant_id,
                    e,
                )
                continue
            done.append(target)

        if snapshot.role is None and RepairTarget.ROLE.value not in snapshot.unavailable:
            logger.info("principal=%s has no user_roles row; not creating one", principal_id)

        if done:
            logger.info(
                "self-healed principal=%s tenant=%s stores=%s",
                principal_id,
                tenant_id,
                ",".join(t.value for t in done),
            )
        return tuple(done)
