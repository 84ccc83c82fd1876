# tenant_access/tenancy/diagnostics.py
"""
Read-only report of where a principal's tenant associations disagree.

Nothing here writes: the report shows what the resolver would pick and
which stores a resolution pass would repair.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from tenant_access.core.errors import InvalidRoleState, StoreUnavailable
from tenant_access.tenancy.ports import AssociationStore
from tenant_access.tenancy.resolver import ConflictResolver, plan_repairs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssociationReport:
    principal_id: uuid.UUID
    role: Optional[str] = None
    role_valid: bool = True
    profile_tenant_id: Optional[uuid.UUID] = None
    role_tenant_id: Optional[uuid.UUID] = None
    membership_tenant_ids: tuple[uuid.UUID, ...] = ()
    # tenant ids referenced by any store that do not exist in tenants
    dangling_tenant_ids: tuple[uuid.UUID, ...] = ()
    unavailable: tuple[str, ...] = ()
    resolved_tenant_id: Optional[uuid.UUID] = None
    resolved_source: Optional[str] = None
    pending_repairs: tuple[str, ...] = ()
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def consistent(self) -> bool:
        return not self.pending_repairs and not self.dangling_tenant_ids and not self.unavailable


async def diagnose(store: AssociationStore, resolver: ConflictResolver, principal_id: uuid.UUID) -> AssociationReport:
    snapshot = await resolver.reader.read_snapshot(principal_id)
    notes: list[str] = []

    role_raw = snapshot.role.role if snapshot.role else None
    role_valid = True
    if snapshot.role is not None:
        try:
            snapshot.role.site_role  # raises on unknown values
        except InvalidRoleState:
            role_valid = False
            notes.append(f"unrecognized role value {role_raw!r}")
    elif "user_roles" not in snapshot.unavailable:
        notes.append("no user_roles row")

    referenced: list[uuid.UUID] = []
    for tenant_id in (
        snapshot.role_tenant_id,
        snapshot.profile_tenant_id,
        *(m.tenant_id for m in snapshot.memberships),
    ):
        if tenant_id is not None and tenant_id not in referenced:
            referenced.append(tenant_id)

    dangling: list[uuid.UUID] = []
    if referenced:
        try:
            existing = await store.get_tenants(referenced)
        except StoreUnavailable as e:
            logger.warning("tenant lookup unavailable while diagnosing principal=%s: %s", principal_id, e)
            notes.append("tenants lookup unavailable")
        else:
            dangling = [t for t in referenced if t not in existing]

    tenant_id, source, uncertain = await resolver.pick(snapshot)
    pending: list[str] = []
    if tenant_id is None:
        notes.append("no tenant could be resolved")
    elif uncertain:
        notes.append("tenant directory unavailable; repairs withheld")
    else:
        pending = [target.value for target in plan_repairs(snapshot, tenant_id)]

    report = AssociationReport(
        principal_id=principal_id,
        role=role_raw,
        role_valid=role_valid,
        profile_tenant_id=snapshot.profile_tenant_id,
        role_tenant_id=snapshot.role_tenant_id,
        membership_tenant_ids=tuple(m.tenant_id for m in snapshot.memberships),
        dangling_tenant_ids=tuple(dangling),
        unavailable=tuple(sorted(snapshot.unavailable)),
        resolved_tenant_id=tenant_id,
        resolved_source=source.value if source else None,
        pending_repairs=tuple(pending),
        notes=tuple(notes),
    )
    logger.info("diagnostics for principal=%s consistent=%s", principal_id, report.consistent)
    return report
