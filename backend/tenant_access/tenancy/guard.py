# tenant_access/tenancy/guard.py
"""
Per-principal single-flight state for resolution and routing passes.

Each (principal, scope) key moves through idle -> resolving -> resolved|failed.
Scope is TENANT_SCOPE for tenant resolution and route:<location> for routing,
where a location is the entry point plus path.
All state changes happen between awaits, so check-then-set is atomic on the
event loop.

Settled entries expire after `ttl` seconds. Principals not seen for `ttl`
seconds are dropped, and at most `max_principals` are kept (least recently
seen go first). A principal with a pass in flight is never dropped.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from tenant_access.core.errors import ResolutionAbandoned, ResolutionTimeout, StoreUnavailable

logger = logging.getLogger(__name__)

TENANT_SCOPE = "tenant"
ROUTE_SCOPE_PREFIX = "route:"


def route_scope(location: str) -> str:
    return ROUTE_SCOPE_PREFIX + (location or "/")


class GuardStatus(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class GuardEntry:
    status: GuardStatus = GuardStatus.IDLE
    has_attempted: bool = False
    result: Any = None
    error: Optional[BaseException] = None
    task: Optional[asyncio.Task] = None
    waiters: int = 0
    settled_at: Optional[float] = None


@dataclass
class _PrincipalState:
    entries: dict[str, GuardEntry] = field(default_factory=dict)
    last_route_scope: Optional[str] = None
    touched_at: float = 0.0

    @property
    def busy(self) -> bool:
        return any(e.status is GuardStatus.RESOLVING for e in self.entries.values())


class ResolutionGuard:
    def __init__(
        self,
        timeout: float = 3.0,
        ttl: float = 300.0,
        max_principals: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._timeout = timeout
        self._ttl = ttl
        self._max_principals = max_principals
        self._clock = clock
        self._principals: OrderedDict[uuid.UUID, _PrincipalState] = OrderedDict()

    def __len__(self) -> int:
        return len(self._principals)

    # ---------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------
    def entry(self, principal_id: uuid.UUID, scope: str) -> GuardEntry:
        state = self._principals.get(principal_id)
        if state is None or scope not in state.entries:
            return GuardEntry()
        return state.entries[scope]

    def status(self, principal_id: uuid.UUID, scope: str) -> GuardStatus:
        return self.entry(principal_id, scope).status

    def tracks(self, principal_id: uuid.UUID) -> bool:
        return principal_id in self._principals

    # ---------------------------------------------------------
    # Bookkeeping
    # ---------------------------------------------------------
    def _state(self, principal_id: uuid.UUID) -> _PrincipalState:
        state = self._principals.get(principal_id)
        if state is None:
            state = self._principals[principal_id] = _PrincipalState()
        else:
            self._principals.move_to_end(principal_id)
        state.touched_at = self._clock()
        self._evict(keep=principal_id)
        return state

    def _evict(self, keep: uuid.UUID) -> None:
        now = self._clock()
        # oldest first; stop at the first principal still inside the ttl
        for principal_id, state in list(self._principals.items()):
            if now - state.touched_at < self._ttl:
                break
            if principal_id != keep and not state.busy:
                self._drop(principal_id)

        if len(self._principals) <= self._max_principals:
            return
        for principal_id, state in list(self._principals.items()):
            if len(self._principals) <= self._max_principals:
                break
            if principal_id != keep and not state.busy:
                self._drop(principal_id)

    def _drop(self, principal_id: uuid.UUID) -> None:
        state = self._principals.pop(principal_id)
        for entry in state.entries.values():
            self._rearm(entry)
        logger.debug("dropped resolution state for principal=%s", principal_id)

    def _expired(self, entry: GuardEntry) -> bool:
        return entry.settled_at is not None and self._clock() - entry.settled_at >= self._ttl

    # ---------------------------------------------------------
    # Single-flight execution
    # ---------------------------------------------------------
    async def run(self, principal_id: uuid.UUID, scope: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run factory() at most once for (principal, scope) until reset or
        until the settled entry expires.

        - resolved: the stored result is returned without calling factory
        - failed: the stored error is raised again without calling factory
        - resolving: the caller joins the in-flight task
        - idle: a new task is started

        The task is bounded by the guard timeout. On expiry every waiter gets
        ResolutionTimeout and the entry is failed, so callers can render a
        retry state instead of waiting. StoreUnavailable reaches the waiters
        but leaves the entry idle, so the next call tries again.
        """
        state = self._state(principal_id)
        entry = state.entries.setdefault(scope, GuardEntry())

        if entry.status in (GuardStatus.RESOLVED, GuardStatus.FAILED) and self._expired(entry):
            self._rearm(entry)
        if entry.status is GuardStatus.RESOLVED:
            return entry.result
        if entry.status is GuardStatus.FAILED:
            raise entry.error

        if entry.status is GuardStatus.IDLE:
            entry.status = GuardStatus.RESOLVING
            entry.has_attempted = True
            entry.result = None
            entry.error = None
            entry.task = asyncio.ensure_future(self._bounded(factory, scope))
            entry.task.add_done_callback(lambda t, e=entry: self._settle(e, t, principal_id, scope))

        task = entry.task
        entry.waiters += 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # the caller went away; don't leave the key stuck in resolving
                if entry.waiters == 1 and entry.task is task and not task.done():
                    self._rearm(entry)
                raise
            # the pass itself was dropped by reset() or abandon()
            raise ResolutionAbandoned(scope) from None
        finally:
            entry.waiters -= 1

    async def _bounded(self, factory: Callable[[], Awaitable[Any]], scope: str) -> Any:
        try:
            return await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise ResolutionTimeout(scope, self._timeout) from None

    def _settle(self, entry: GuardEntry, task: asyncio.Task, principal_id: uuid.UUID, scope: str) -> None:
        if entry.task is not task:
            return  # entry was reset or abandoned meanwhile
        entry.task = None
        if task.cancelled():
            entry.status = GuardStatus.IDLE
            entry.has_attempted = False
            return
        exc = task.exception()
        if isinstance(exc, StoreUnavailable):
            # transient: nothing is cached
            logger.warning("pass for principal=%s scope=%s hit an unavailable store: %s", principal_id, scope, exc)
            entry.status = GuardStatus.IDLE
            entry.has_attempted = False
            return
        entry.settled_at = self._clock()
        if exc is not None:
            entry.status = GuardStatus.FAILED
            entry.error = exc
            if isinstance(exc, ResolutionTimeout):
                logger.warning("resolution for principal=%s scope=%s timed out", principal_id, scope)
        else:
            entry.status = GuardStatus.RESOLVED
            entry.result = task.result()

    @staticmethod
    def _rearm(entry: GuardEntry) -> None:
        task = entry.task
        entry.task = None
        entry.status = GuardStatus.IDLE
        entry.has_attempted = False
        entry.result = None
        entry.error = None
        entry.settled_at = None
        if task is not None and not task.done():
            task.cancel()

    # ---------------------------------------------------------
    # Reset triggers
    # ---------------------------------------------------------
    def abandon(self, principal_id: uuid.UUID, scope: str) -> None:
        """Drop an in-flight pass (e.g. the shell unmounted). Never raises."""
        if self.status(principal_id, scope) is GuardStatus.RESOLVING:
            self.invalidate(principal_id, scope)

    def invalidate(self, principal_id: uuid.UUID, scope: str) -> None:
        """Forget one scope whatever its state; the next run() starts afresh."""
        state = self._principals.get(principal_id)
        if state is None:
            return
        entry = state.entries.pop(scope, None)
        if entry is not None:
            self._rearm(entry)

    def reset(self, principal_id: uuid.UUID) -> None:
        """Sign-out, tenant switch or explicit refresh: forget every scope."""
        state = self._principals.pop(principal_id, None)
        if state is None:
            return
        for entry in state.entries.values():
            self._rearm(entry)

    def observe_location(self, principal_id: uuid.UUID, location: str) -> None:
        """
        Moving to a different location re-arms the routing check for the one
        we are leaving. Seeing the same location again changes nothing.
        """
        state = self._state(principal_id)
        scope = route_scope(location)
        previous = state.last_route_scope
        if previous == scope:
            return
        state.last_route_scope = scope
        if previous is not None:
            old = state.entries.pop(previous, None)
            if old is not None:
                self._rearm(old)
