# tenant_access/core/errors.py

from __future__ import annotations


class TenantAccessError(Exception):
    """Base class for errors raised by the tenant access core."""


class StoreUnavailable(TenantAccessError):
    """
    A read or write against one of the association stores failed
    (network, driver or storage error).

    Readers downgrade this to "source absent"; writers log it and move on.
    """

    def __init__(self, store: str, operation: str, cause: BaseException | None = None):
        self.store = store
        self.operation = operation
        self.cause = cause
        msg = f"{store}.{operation} failed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class InvalidRoleState(TenantAccessError):
    """The principal's role value is not one we recognize. Treated as no access."""


class ResolutionTimeout(TenantAccessError):
    """A guarded resolution pass did not finish within the configured bound."""

    def __init__(self, scope: str, timeout: float):
        self.scope = scope
        self.timeout = timeout
        super().__init__(f"Resolution for {scope!r} did not finish within {timeout:.1f}s")


class ResolutionAbandoned(TenantAccessError):
    """The pass a caller was waiting on was dropped by sign-out, refresh or abandon()."""

    def __init__(self, scope: str):
        self.scope = scope
        super().__init__(f"Resolution for {scope!r} was abandoned")


class TenantNotAccessible(TenantAccessError):
    """The principal asked to switch to a tenant it cannot reach."""
