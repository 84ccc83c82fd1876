# tenant_access/tenancy/domain.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_LOCAL_HOSTS = {"localhost", "127.0.0.1"}


def _normalize_slug(value: Optional[str]) -> Optional[str]:
    v = (value or "").strip().lower()
    return v or None


@dataclass(frozen=True)
class DomainContext:
    """
    Which entry point the principal came through.

    is_tenant_scoped=False is the general "owner" login; True is a garage's
    staff login, optionally naming the garage by slug.
    """

    is_tenant_scoped: bool = False
    tenant_slug: Optional[str] = None

    @classmethod
    def owner(cls) -> "DomainContext":
        return cls(is_tenant_scoped=False)

    @classmethod
    def staff(cls, tenant_slug: Optional[str] = None) -> "DomainContext":
        return cls(is_tenant_scoped=True, tenant_slug=_normalize_slug(tenant_slug))

    @classmethod
    def from_host(cls, host: Optional[str], base_domain: str) -> "DomainContext":
        """
        "northside.garagehub.app" with base_domain "garagehub.app" -> staff("northside").
        "garagehub.app", "www.garagehub.app" and bare local hosts -> owner().
        For local testing "northside.localhost" is treated like a subdomain.
        """
        hostname = (host or "").strip().lower().split(":", 1)[0].rstrip(".")
        base = (base_domain or "").strip().lower().rstrip(".")

        if not hostname or hostname in _LOCAL_HOSTS or hostname == base:
            return cls.owner()
        if all(p.isdigit() for p in hostname.split(".")):
            return cls.owner()  # bare IP

        if base and hostname.endswith("." + base):
            sub = hostname[: -len(base) - 1]
        else:
            parts = hostname.split(".")
            # a foreign host needs at least sub.domain.tld to carry a subdomain
            if len(parts) <= 2:
                return cls.owner()
            sub = parts[0]

        # only the left-most label names the garage
        sub = sub.split(".")[0]
        if sub in {"", "www"}:
            return cls.owner()
        return cls.staff(sub)
