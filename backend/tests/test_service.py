# tests/test_service.py
from __future__ import annotations

import asyncio
import uuid

import pytest

from tenant_access.core.errors import TenantNotAccessible
from tenant_access.core.roles import MembershipRole
from tenant_access.tenancy.domain import DomainContext
from tenant_access.tenancy.guard import TENANT_SCOPE, GuardStatus
from tenant_access.tenancy.resolver import DefaultTenantPolicy
from tenant_access.tenancy.router import RouteKind, Routes
from tenant_access.tenancy.service import TenantAccessService

from fakes import InMemoryAssociationStore


def make_service(store, navigations=None, timeout: float = 1.0) -> TenantAccessService:
    return TenantAccessService(
        store,
        policy=DefaultTenantPolicy(slug=None, allow_any_tenant=False),
        timeout=timeout,
        navigator=navigations.append if navigations is not None else None,
    )


# ---------------------------------------------------------
# Single-flight resolution
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_concurrent_resolutions_do_one_set_of_reads_and_writes():
    store = InMemoryAssociationStore()
    g = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "technician")
    store.set_profile(p, g.id)
    store.delay = 0.01
    service = make_service(store)

    a, b = await asyncio.gather(service.resolve_active_tenant(p), service.resolve_active_tenant(p))

    assert a == b == g.id
    assert store.read_count == 3
    # role row tenant + membership
    assert store.write_count == 2


@pytest.mark.asyncio
async def test_refresh_runs_resolution_again():
    store = InMemoryAssociationStore()
    g = store.add_tenant("g1")
    p = uuid.uuid4()
    store.set_profile(p, g.id)
    service = make_service(store)

    await service.resolve_active_tenant(p)
    await service.resolve_active_tenant(p)
    assert store.read_count == 3

    service.refresh(p)
    await service.resolve_active_tenant(p)
    assert store.read_count == 6


# ---------------------------------------------------------
# Routing through the service
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_owner_admin_with_two_garages_navigates_once_per_location():
    store = InMemoryAssociationStore()
    g1, g2 = store.add_tenant("g1"), store.add_tenant("g2")
    p = uuid.uuid4()
    store.add_role(p, "administrator")
    store.add_member(p, g1.id, MembershipRole.OWNER)
    store.add_member(p, g2.id, MembershipRole.OWNER)
    navigations = []
    service = make_service(store, navigations)

    first = await service.decide_route(p, DomainContext.owner(), "/auth")
    again = await service.decide_route(p, DomainContext.owner(), "/auth")

    assert first == again
    assert first.path == Routes.TENANT_SELECTION
    assert navigations == [first]

    await service.decide_route(p, DomainContext.owner(), "/garage-management")
    await service.decide_route(p, DomainContext.owner(), "/auth")
    assert len(navigations) == 3


@pytest.mark.asyncio
async def test_ghost_slug_never_invokes_navigation():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "front_desk", g1.id)
    store.add_member(p, g1.id)
    navigations = []
    service = make_service(store, navigations)

    decision = await service.decide_route(p, DomainContext.staff("ghost"), "/auth")

    assert decision.kind is RouteKind.TENANT_NOT_FOUND
    assert navigations == []


@pytest.mark.asyncio
async def test_front_desk_with_matching_slug_lands_on_appointments():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "front_desk", g1.id)
    store.add_member(p, g1.id)
    navigations = []
    service = make_service(store, navigations)

    decision = await service.decide_route(p, DomainContext.staff("g1"), "/auth")

    assert decision.path == Routes.APPOINTMENTS
    assert decision.tenant_id == g1.id
    assert navigations == [decision]


@pytest.mark.asyncio
async def test_invalid_role_routes_to_sign_out():
    store = InMemoryAssociationStore()
    p = uuid.uuid4()
    store.add_role(p, "superuser")
    navigations = []
    service = make_service(store, navigations)

    decision = await service.decide_route(p, DomainContext.staff(), "/")

    assert decision.sign_out
    assert decision.path == Routes.STAFF_ENTRY
    assert navigations == [decision]


@pytest.mark.asyncio
async def test_anonymous_visitor_goes_to_public_page():
    navigations = []
    service = make_service(InMemoryAssociationStore(), navigations)

    decision = await service.decide_route(None, DomainContext.owner(), "/dashboard")

    assert decision.kind is RouteKind.PUBLIC
    assert navigations == [decision]


@pytest.mark.asyncio
async def test_route_timeout_yields_retry_without_navigation():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "technician", g1.id)
    store.delay = 0.5
    navigations = []
    service = make_service(store, navigations, timeout=0.05)

    decision = await service.decide_route(p, DomainContext.staff(), "/")

    assert decision.kind is RouteKind.RETRY
    assert decision.navigate is False
    assert navigations == []
    # the inner resolution was dropped, not left resolving
    assert service.guard.status(p, TENANT_SCOPE) is not GuardStatus.RESOLVING

    store.delay = 0.0
    service.refresh(p)
    decision = await service.decide_route(p, DomainContext.staff(), "/")
    assert decision.path == Routes.JOB_TICKETS
    assert decision.tenant_id == g1.id


@pytest.mark.asyncio
async def test_owner_admin_with_one_garage_is_persisted():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "administrator")
    store.add_member(p, g1.id, MembershipRole.OWNER)
    service = make_service(store)

    decision = await service.decide_route(p, DomainContext.owner(), "/auth")

    assert decision.path == Routes.DASHBOARD
    assert decision.tenant_id == g1.id
    assert decision.persist_tenant
    assert store.role_tenant(p) == g1.id
    assert store.profiles[p] == g1.id


@pytest.mark.asyncio
async def test_role_store_outage_yields_retry_and_is_tried_again():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "front_desk", g1.id)
    store.add_member(p, g1.id)
    store.failing.add("read_role_rows")
    navigations = []
    service = make_service(store, navigations)

    decision = await service.decide_route(p, DomainContext.staff("g1"), "/auth")

    assert decision.kind is RouteKind.RETRY
    assert decision.navigate is False
    assert not decision.sign_out
    assert navigations == []

    # same location, no refresh: the outage was not cached
    store.failing.clear()
    decision = await service.decide_route(p, DomainContext.staff("g1"), "/auth")

    assert decision.path == Routes.APPOINTMENTS
    assert navigations == [decision]


@pytest.mark.asyncio
async def test_resolution_from_partial_data_is_not_cached():
    store = InMemoryAssociationStore()
    g_role, g_profile = store.add_tenant("role-g"), store.add_tenant("profile-g")
    p = uuid.uuid4()
    store.add_role(p, "technician", g_role.id)
    store.set_profile(p, g_profile.id)
    store.fail_next["get_tenant"] = 1
    service = make_service(store)

    assert await service.resolve_active_tenant(p) == g_profile.id
    assert service.guard.status(p, TENANT_SCOPE) is GuardStatus.IDLE
    assert store.role_tenant(p) == g_role.id

    assert await service.resolve_active_tenant(p) == g_role.id
    assert service.guard.status(p, TENANT_SCOPE) is GuardStatus.RESOLVED


@pytest.mark.asyncio
async def test_auto_selection_is_not_persisted_from_partial_data():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "administrator")
    store.add_member(p, g1.id, MembershipRole.OWNER)
    # the membership tenant cannot be checked during resolution
    store.fail_next["get_tenant"] = 1
    service = make_service(store)

    decision = await service.decide_route(p, DomainContext.owner(), "/auth")

    assert decision.path == Routes.DASHBOARD
    assert decision.tenant_id == g1.id
    assert store.write_count == 0
    assert store.role_tenant(p) is None


# ---------------------------------------------------------
# Explicit triggers
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_switch_tenant_rewrites_stores_and_resets_guard():
    store = InMemoryAssociationStore()
    g1, g2 = store.add_tenant("g1"), store.add_tenant("g2")
    p = uuid.uuid4()
    store.add_role(p, "administrator", g1.id)
    store.add_member(p, g1.id, MembershipRole.OWNER)
    store.add_member(p, g2.id, MembershipRole.ADMINISTRATOR)
    service = make_service(store)

    assert await service.resolve_active_tenant(p) == g1.id

    target = await service.switch_tenant(p, g2.id)

    assert target.id == g2.id
    assert store.role_tenant(p) == g2.id
    assert store.profiles[p] == g2.id
    assert await service.resolve_active_tenant(p) == g2.id


@pytest.mark.asyncio
async def test_switch_to_inaccessible_tenant_is_rejected():
    store = InMemoryAssociationStore()
    g1, other = store.add_tenant("g1"), store.add_tenant("other")
    p = uuid.uuid4()
    store.add_member(p, g1.id)
    service = make_service(store)

    with pytest.raises(TenantNotAccessible):
        await service.switch_tenant(p, other.id)
    assert store.write_count == 0


@pytest.mark.asyncio
async def test_sign_out_clears_every_scope():
    store = InMemoryAssociationStore()
    g1 = store.add_tenant("g1")
    p = uuid.uuid4()
    store.set_profile(p, g1.id)
    service = make_service(store)

    await service.resolve_active_tenant(p)
    assert service.guard.status(p, TENANT_SCOPE) is GuardStatus.RESOLVED

    service.sign_out(p)
    assert service.guard.status(p, TENANT_SCOPE) is GuardStatus.IDLE


@pytest.mark.asyncio
async def test_diagnose_reports_without_writing():
    store = InMemoryAssociationStore()
    g1, g2 = store.add_tenant("g1"), store.add_tenant("g2")
    ghost = uuid.uuid4()
    p = uuid.uuid4()
    store.add_role(p, "technician", ghost)
    store.set_profile(p, g1.id)
    store.add_member(p, g2.id)
    service = make_service(store)

    report = await service.diagnose(p)

    assert report.resolved_tenant_id == g1.id
    assert report.resolved_source == "profile"
    assert report.dangling_tenant_ids == (ghost,)
    assert set(report.pending_repairs) == {"user_roles", "tenant_memberships"}
    assert not report.consistent
    assert store.write_count == 0


@pytest.mark.asyncio
async def test_diagnose_withholds_repairs_when_tenant_directory_fails():
    store = InMemoryAssociationStore()
    g1, g2 = store.add_tenant("g1"), store.add_tenant("g2")
    p = uuid.uuid4()
    store.add_role(p, "technician", g1.id)
    store.set_profile(p, g2.id)
    store.fail_next["get_tenant"] = 1
    service = make_service(store)

    report = await service.diagnose(p)

    assert report.resolved_tenant_id == g2.id
    assert report.pending_repairs == ()
    assert "tenant directory unavailable; repairs withheld" in report.notes
    assert store.write_count == 0
