# tenant_access/core/roles.py

from __future__ import annotations

import enum

from tenant_access.core.errors import InvalidRoleState


class SiteRole(str, enum.Enum):
    ADMINISTRATOR = "administrator"
    TECHNICIAN = "technician"
    FRONT_DESK = "front_desk"
    NONE = "none"

    @classmethod
    def parse(cls, value: str | None) -> "SiteRole":
        """
        Map a stored role value onto SiteRole.
        A missing value means "no role"; anything unrecognized is an error.
        """
        if value is None:
            return cls.NONE
        v = value.strip().lower()
        if not v:
            return cls.NONE
        try:
            return cls(v)
        except ValueError:
            raise InvalidRoleState(f"Unrecognized site role: {value!r}") from None


class MembershipRole(str, enum.Enum):
    OWNER = "owner"                  # creator of the garage
    ADMINISTRATOR = "administrator"  # full control inside the garage
    MEMBER = "member"

    @classmethod
    def parse(cls, value: str | None) -> "MembershipRole":
        # Legacy rows carry the site role ("technician", "front_desk") here.
        v = (value or "").strip().lower()
        if v in {"admin", "administrator"}:
            return cls.ADMINISTRATOR
        if v == "owner":
            return cls.OWNER
        return cls.MEMBER


MANAGING_MEMBERSHIP_ROLES = frozenset({MembershipRole.OWNER, MembershipRole.ADMINISTRATOR})


class RelationshipType(str, enum.Enum):
    ROLE = "role"
    MEMBERSHIP = "membership"
    PROFILE = "profile"
    OWNER = "owner"
