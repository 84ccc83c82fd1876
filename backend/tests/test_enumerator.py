# tests/test_enumerator.py
from __future__ import annotations

import uuid

import pytest

from tenant_access.core.roles import MembershipRole, RelationshipType
from tenant_access.tenancy.enumerator import AccessibleTenantEnumerator

from fakes import InMemoryAssociationStore


@pytest.mark.asyncio
async def test_same_tenant_from_every_source_is_listed_once():
    store = InMemoryAssociationStore()
    g = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "administrator", g.id)
    store.add_member(p, g.id, MembershipRole.OWNER)
    store.set_profile(p, g.id)

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert [t.id for t in tenants] == [g.id]
    assert tenants[0].relationship_type is RelationshipType.ROLE
    assert tenants[0].membership_role is MembershipRole.OWNER


@pytest.mark.asyncio
async def test_sources_are_tagged_in_priority_order():
    store = InMemoryAssociationStore()
    g_role, g_member, g_profile = store.add_tenant("r"), store.add_tenant("m"), store.add_tenant("p")
    p = uuid.uuid4()
    store.add_role(p, "administrator", g_role.id)
    store.add_member(p, g_member.id)
    store.set_profile(p, g_profile.id)

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert [(t.slug, t.relationship_type) for t in tenants] == [
        ("r", RelationshipType.ROLE),
        ("m", RelationshipType.MEMBERSHIP),
        ("p", RelationshipType.PROFILE),
    ]


@pytest.mark.asyncio
async def test_owned_garages_are_listed_after_other_sources():
    store = InMemoryAssociationStore()
    p = uuid.uuid4()
    g_member = store.add_tenant("m")
    g_owned = store.add_tenant("o", owner_id=p)
    store.add_member(p, g_member.id)

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert [(t.slug, t.relationship_type) for t in tenants] == [
        ("m", RelationshipType.MEMBERSHIP),
        ("o", RelationshipType.OWNER),
    ]
    assert tenants[1].membership_role is None


@pytest.mark.asyncio
async def test_owner_relationship_yields_to_membership_for_the_same_garage():
    store = InMemoryAssociationStore()
    p = uuid.uuid4()
    g = store.add_tenant("g1", owner_id=p)
    store.add_member(p, g.id, MembershipRole.OWNER)

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert len(tenants) == 1
    assert tenants[0].relationship_type is RelationshipType.MEMBERSHIP


@pytest.mark.asyncio
async def test_owned_garage_read_failure_keeps_other_sources():
    store = InMemoryAssociationStore()
    p = uuid.uuid4()
    g_member = store.add_tenant("m")
    store.add_tenant("o", owner_id=p)
    store.add_member(p, g_member.id)
    store.failing.add("read_owned_tenant_ids")

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert [t.id for t in tenants] == [g_member.id]


@pytest.mark.asyncio
async def test_non_admin_role_rows_do_not_grant_access():
    store = InMemoryAssociationStore()
    g = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_role(p, "technician", g.id)

    assert await AccessibleTenantEnumerator(store).enumerate(p) == []


@pytest.mark.asyncio
async def test_dangling_tenants_are_skipped():
    store = InMemoryAssociationStore()
    g = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_member(p, g.id)
    store.set_profile(p, uuid.uuid4())

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert [t.id for t in tenants] == [g.id]


@pytest.mark.asyncio
async def test_unavailable_source_is_treated_as_empty():
    store = InMemoryAssociationStore()
    g1, g2 = store.add_tenant("g1"), store.add_tenant("g2")
    p = uuid.uuid4()
    store.add_member(p, g1.id)
    store.set_profile(p, g2.id)
    store.failing.add("tenant_memberships")

    tenants = await AccessibleTenantEnumerator(store).enumerate(p)

    assert [t.id for t in tenants] == [g2.id]


@pytest.mark.asyncio
async def test_tenant_directory_outage_yields_empty_list():
    store = InMemoryAssociationStore()
    g = store.add_tenant("g1")
    p = uuid.uuid4()
    store.add_member(p, g.id)
    store.failing.add("tenants")

    assert await AccessibleTenantEnumerator(store).enumerate(p) == []
