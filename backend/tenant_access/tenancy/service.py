# tenant_access/tenancy/service.py
"""
Entry points used by the application shell.

    resolve_active_tenant(principal_id)          -> tenant id | None
    get_accessible_tenants(principal_id)         -> [AccessibleTenant]
    decide_route(principal_id, context, path)    -> RouteDecision

One instance lives for the lifetime of the app; its guard holds the
per-principal session state.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from tenant_access.core.config import Settings
from tenant_access.core.errors import (
    InvalidRoleState,
    ResolutionAbandoned,
    ResolutionTimeout,
    StoreUnavailable,
    TenantNotAccessible,
)
from tenant_access.core.roles import SiteRole
from tenant_access.tenancy.diagnostics import AssociationReport, diagnose
from tenant_access.tenancy.domain import DomainContext
from tenant_access.tenancy.enumerator import AccessibleTenantEnumerator
from tenant_access.tenancy.guard import TENANT_SCOPE, ResolutionGuard, route_scope
from tenant_access.tenancy.ports import AssociationStore, Navigator
from tenant_access.tenancy.reader import TenantStoreReader
from tenant_access.tenancy.resolver import ConflictResolver, DefaultTenantPolicy, Resolution
from tenant_access.tenancy.router import (
    RouteDecision,
    decide_route,
    retry_decision,
    sign_out_decision,
)
from tenant_access.tenancy.types import AccessibleTenant, Principal

logger = logging.getLogger(__name__)


def location_key(context: DomainContext, path: str) -> str:
    """The same path under two entry points is two locations."""
    if not context.is_tenant_scoped:
        entry = "owner"
    else:
        entry = f"staff:{context.tenant_slug or ''}"
    return f"{entry}@{path or '/'}"


class TenantAccessService:
    def __init__(
        self,
        store: AssociationStore,
        policy: DefaultTenantPolicy | None = None,
        timeout: float = 3.0,
        navigator: Navigator | None = None,
        cache_ttl: float = 300.0,
        max_principals: int = 10_000,
    ):
        self._store = store
        self._reader = TenantStoreReader(store)
        self._resolver = ConflictResolver(store, policy=policy, reader=self._reader)
        self._enumerator = AccessibleTenantEnumerator(store, reader=self._reader)
        self._guard = ResolutionGuard(timeout=timeout, ttl=cache_ttl, max_principals=max_principals)
        self._navigator = navigator

    @classmethod
    def from_settings(
        cls, store: AssociationStore, s: Settings, navigator: Navigator | None = None
    ) -> "TenantAccessService":
        return cls(
            store,
            policy=DefaultTenantPolicy.from_settings(s),
            timeout=s.RESOLUTION_TIMEOUT_SECONDS,
            navigator=navigator,
            cache_ttl=s.RESOLUTION_CACHE_TTL_SECONDS,
            max_principals=s.RESOLUTION_CACHE_MAX_PRINCIPALS,
        )

    @property
    def guard(self) -> ResolutionGuard:
        return self._guard

    # ---------------------------------------------------------
    # Tenant resolution
    # ---------------------------------------------------------
    async def resolve(self, principal_id: uuid.UUID) -> Resolution:
        resolution = await self._guard.run(
            principal_id, TENANT_SCOPE, lambda: self._resolver.resolve(principal_id)
        )
        if resolution.degraded and self._guard.entry(principal_id, TENANT_SCOPE).result is resolution:
            # answered from partial data; read again next time
            self._guard.invalidate(principal_id, TENANT_SCOPE)
        return resolution

    async def resolve_active_tenant(self, principal_id: uuid.UUID) -> Optional[uuid.UUID]:
        """
        Raises ResolutionTimeout / ResolutionAbandoned; store failures never
        escape (they only make a source look empty).
        """
        return (await self.resolve(principal_id)).tenant_id

    async def get_accessible_tenants(self, principal_id: uuid.UUID) -> list[AccessibleTenant]:
        return await self._enumerator.enumerate(principal_id)

    # ---------------------------------------------------------
    # Routing
    # ---------------------------------------------------------
    async def load_principal(self, principal_id: uuid.UUID) -> Principal:
        """
        Raises InvalidRoleState for a role value we do not recognize and
        StoreUnavailable when the role store cannot be read.
        """
        role_row = await self._reader.read_role_association(principal_id, strict=True)
        role = role_row.site_role if role_row else SiteRole.NONE
        return Principal(id=principal_id, role=role)

    async def _route_pass(self, principal_id: uuid.UUID, context: DomainContext) -> RouteDecision:
        try:
            principal = await self.load_principal(principal_id)
        except InvalidRoleState as e:
            logger.warning("principal=%s has an invalid role: %s", principal_id, e)
            decision = sign_out_decision(str(e))
        else:
            decision = await self._decide_for(principal, context)

        # inside the guarded pass, so a cached decision never navigates twice
        self._navigate(decision)
        return decision

    async def _decide_for(self, principal: Principal, context: DomainContext) -> RouteDecision:
        if principal.role == SiteRole.NONE:
            return decide_route(principal, context, [], None)

        # resolve (and repair) first so the enumeration sees the healed stores
        resolution = await self.resolve(principal.id)
        resolved = resolution.tenant_id
        accessible = await self.get_accessible_tenants(principal.id)
        decision = decide_route(principal, context, accessible, resolved)

        if decision.persist_tenant and decision.tenant_id is not None and decision.tenant_id != resolved:
            if resolution.degraded:
                logger.warning(
                    "not persisting tenant=%s for principal=%s: resolution read partial data",
                    decision.tenant_id,
                    principal.id,
                )
            else:
                await self._resolver.adopt(principal.id, decision.tenant_id)
                self._guard.invalidate(principal.id, TENANT_SCOPE)
        return decision

    def _navigate(self, decision: RouteDecision) -> None:
        if decision.navigate and self._navigator is not None:
            self._navigator(decision)

    async def decide_route(
        self,
        principal_id: Optional[uuid.UUID],
        context: DomainContext,
        path: str = "/",
    ) -> RouteDecision:
        """
        Evaluate the landing route once per location. Always returns a
        decision. A pass that times out, is dropped or cannot read the role
        store yields a retry decision; only the last is tried again on the
        next call.
        """
        if principal_id is None:
            decision = decide_route(None, context, [], None)
            self._navigate(decision)
            return decision

        location = location_key(context, path)
        self._guard.observe_location(principal_id, location)
        try:
            return await self._guard.run(
                principal_id,
                route_scope(location),
                lambda: self._route_pass(principal_id, context),
            )
        except (ResolutionTimeout, ResolutionAbandoned, StoreUnavailable) as e:
            return retry_decision(str(e))

    # ---------------------------------------------------------
    # Explicit triggers
    # ---------------------------------------------------------
    def refresh(self, principal_id: uuid.UUID) -> None:
        self._guard.reset(principal_id)

    def sign_out(self, principal_id: uuid.UUID) -> None:
        logger.info("principal=%s signed out; clearing resolution state", principal_id)
        self._guard.reset(principal_id)

    async def switch_tenant(self, principal_id: uuid.UUID, tenant_id: uuid.UUID) -> AccessibleTenant:
        accessible = await self.get_accessible_tenants(principal_id)
        target = next((t for t in accessible if t.id == tenant_id), None)
        if target is None:
            raise TenantNotAccessible(f"tenant {tenant_id} is not accessible to principal {principal_id}")

        await self._resolver.adopt(principal_id, tenant_id)
        self._guard.reset(principal_id)
        logger.info("principal=%s switched to tenant=%s", principal_id, tenant_id)
        return target

    async def diagnose(self, principal_id: uuid.UUID) -> AssociationReport:
        return await diagnose(self._store, self._resolver, principal_id)
