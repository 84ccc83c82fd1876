# tenant_access/tenancy/router.py
"""
Role-based landing decision.

decide_route() is pure: it only looks at its arguments and never raises.
Navigation itself happens outside this module.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from tenant_access.core.roles import MANAGING_MEMBERSHIP_ROLES, SiteRole
from tenant_access.tenancy.domain import DomainContext
from tenant_access.tenancy.types import AccessibleTenant, Principal


class Routes:
    PUBLIC = "/"
    STAFF_ENTRY = "/auth?type=staff"
    TENANT_SELECTION = "/garage-management"
    TENANT_SELECTION_FROM_STAFF = "/garage-management?source=staff"
    CREATE_TENANT = "/create-garage"
    DASHBOARD = "/dashboard"
    JOB_TICKETS = "/dashboard/job-tickets"
    APPOINTMENTS = "/dashboard/appointments"
    TENANT_NOT_FOUND = "/garage-not-found"


class RouteKind(str, enum.Enum):
    PUBLIC = "public"
    STAFF_ENTRY = "staff_entry"
    TENANT_SELECTION = "tenant_selection"
    CREATE_TENANT = "create_tenant"
    DASHBOARD = "dashboard"
    JOB_TICKETS = "job_tickets"
    APPOINTMENTS = "appointments"
    TENANT_NOT_FOUND = "tenant_not_found"
    RETRY = "retry"


@dataclass(frozen=True)
class RouteDecision:
    kind: RouteKind
    path: str
    tenant_id: Optional[uuid.UUID] = None
    # False for terminal states the shell must render in place
    navigate: bool = True
    sign_out: bool = False
    # the shell should store tenant_id as the principal's active tenant
    persist_tenant: bool = False
    # "staff" when an administrator arrived through a staff entry point
    source: Optional[str] = None
    reason: Optional[str] = None


def find_by_slug(tenants: Sequence[AccessibleTenant], slug: Optional[str]) -> Optional[AccessibleTenant]:
    if not slug:
        return None
    wanted = slug.strip().lower()
    for t in tenants:
        if (t.slug or "").lower() == wanted:
            return t
    return None


# ---------------------------------------------------------
# Canned decisions
# ---------------------------------------------------------
def public_decision() -> RouteDecision:
    return RouteDecision(kind=RouteKind.PUBLIC, path=Routes.PUBLIC)


def sign_out_decision(reason: str) -> RouteDecision:
    return RouteDecision(kind=RouteKind.STAFF_ENTRY, path=Routes.STAFF_ENTRY, sign_out=True, reason=reason)


def retry_decision(reason: str) -> RouteDecision:
    # rendered in place: re-navigating would just restart the pass that failed
    return RouteDecision(kind=RouteKind.RETRY, path=Routes.STAFF_ENTRY, navigate=False, reason=reason)


def tenant_not_found_decision(slug: str) -> RouteDecision:
    return RouteDecision(
        kind=RouteKind.TENANT_NOT_FOUND,
        path=Routes.TENANT_NOT_FOUND,
        navigate=False,
        reason=f"no accessible garage with slug {slug!r}",
    )


def role_landing(role: SiteRole, tenant_id: uuid.UUID) -> RouteDecision:
    if role == SiteRole.TECHNICIAN:
        return RouteDecision(kind=RouteKind.JOB_TICKETS, path=Routes.JOB_TICKETS, tenant_id=tenant_id)
    if role == SiteRole.FRONT_DESK:
        return RouteDecision(kind=RouteKind.APPOINTMENTS, path=Routes.APPOINTMENTS, tenant_id=tenant_id)
    return RouteDecision(kind=RouteKind.DASHBOARD, path=Routes.DASHBOARD, tenant_id=tenant_id)


# ---------------------------------------------------------
# Decision table
# ---------------------------------------------------------
def _decide_owner_context(role: SiteRole, accessible: Sequence[AccessibleTenant]) -> RouteDecision:
    if role != SiteRole.ADMINISTRATOR:
        return sign_out_decision("only administrators can use the owner login")

    if len(accessible) > 1:
        return RouteDecision(kind=RouteKind.TENANT_SELECTION, path=Routes.TENANT_SELECTION)

    if len(accessible) == 1:
        return RouteDecision(
            kind=RouteKind.DASHBOARD,
            path=Routes.DASHBOARD,
            tenant_id=accessible[0].id,
            persist_tenant=True,
        )

    return RouteDecision(kind=RouteKind.CREATE_TENANT, path=Routes.CREATE_TENANT)


def _decide_staff_with_slug(
    role: SiteRole, slug: str, accessible: Sequence[AccessibleTenant]
) -> RouteDecision:
    match = find_by_slug(accessible, slug)
    if match is None:
        return tenant_not_found_decision(slug)

    if role == SiteRole.ADMINISTRATOR or match.membership_role in MANAGING_MEMBERSHIP_ROLES:
        return RouteDecision(kind=RouteKind.DASHBOARD, path=Routes.DASHBOARD, tenant_id=match.id)

    return role_landing(role, match.id)


def _decide_staff_without_slug(
    role: SiteRole,
    accessible: Sequence[AccessibleTenant],
    resolved_tenant_id: Optional[uuid.UUID],
) -> RouteDecision:
    if role == SiteRole.ADMINISTRATOR and len(accessible) > 1:
        return RouteDecision(
            kind=RouteKind.TENANT_SELECTION,
            path=Routes.TENANT_SELECTION_FROM_STAFF,
            source="staff",
        )

    if resolved_tenant_id is not None:
        return role_landing(role, resolved_tenant_id)

    if role == SiteRole.ADMINISTRATOR:
        return RouteDecision(kind=RouteKind.CREATE_TENANT, path=Routes.CREATE_TENANT)

    return sign_out_decision("no garage is assigned to this account")


def decide_route(
    principal: Optional[Principal],
    context: DomainContext,
    accessible: Sequence[AccessibleTenant],
    resolved_tenant_id: Optional[uuid.UUID],
) -> RouteDecision:
    if principal is None:
        return public_decision()

    if principal.role == SiteRole.NONE:
        return sign_out_decision("account has no role")

    if not context.is_tenant_scoped:
        return _decide_owner_context(principal.role, accessible)

    if context.tenant_slug:
        return _decide_staff_with_slug(principal.role, context.tenant_slug, accessible)

    return _decide_staff_without_slug(principal.role, accessible, resolved_tenant_id)
