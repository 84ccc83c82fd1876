# tests/test_domain.py
from __future__ import annotations

import pytest

from tenant_access.tenancy.domain import DomainContext


@pytest.mark.parametrize(
    "host",
    [None, "", "localhost", "localhost:8080", "127.0.0.1:8000", "10.0.0.4", "garagehub.app", "www.garagehub.app", "example.com"],
)
def test_owner_hosts(host):
    assert DomainContext.from_host(host, "garagehub.app") == DomainContext.owner()


@pytest.mark.parametrize(
    "host,slug",
    [
        ("northside.garagehub.app", "northside"),
        ("NorthSide.GarageHub.app:443", "northside"),
        ("a.b.garagehub.app", "a"),
        ("northside.localhost", "northside"),
        ("east.other-domain.com", "east"),
    ],
)
def test_staff_hosts(host, slug):
    ctx = DomainContext.from_host(host, "garagehub.app" if "localhost" not in host else "localhost")
    assert ctx.is_tenant_scoped
    assert ctx.tenant_slug == slug


def test_staff_slug_is_normalized():
    assert DomainContext.staff("  G1 ").tenant_slug == "g1"
    assert DomainContext.staff("   ").tenant_slug is None
