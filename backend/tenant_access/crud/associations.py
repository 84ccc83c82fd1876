# tenant_access/crud/associations.py
from __future__ import annotations

import functools
import uuid
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_access.core.errors import StoreUnavailable
from tenant_access.core.roles import MembershipRole
from tenant_access.models.profile import Profile
from tenant_access.models.tenant import Tenant
from tenant_access.models.tenant_membership import TenantMembership
from tenant_access.models.user_role import UserRole
from tenant_access.tenancy.types import Membership, RoleAssociation, TenantRecord


def _store_call(store: str):
    """
    Wrap a store method so driver/transport failures surface as StoreUnavailable.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except (SQLAlchemyError, OSError) as e:
                raise StoreUnavailable(store, fn.__name__, e) from e

        return wrapper

    return decorator


def _to_tenant_record(t: Tenant) -> TenantRecord:
    return TenantRecord(
        id=t.id,
        name=t.name,
        slug=t.slug,
        address=t.address,
        email=t.email,
        phone=t.phone,
        owner_id=t.owner_id,
        created_at=t.created_at,
    )


class SqlAssociationStore:
    """
    AssociationStore backed by the relational tables.

    Each call opens its own short-lived session, so independent reads can run
    concurrently and every write commits on its own (there is no transaction
    spanning the three stores).
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    # ---------------------------------------------------------
    # Association reads
    # ---------------------------------------------------------
    @_store_call("profiles")
    async def read_profile_tenant(self, principal_id: uuid.UUID) -> Optional[uuid.UUID]:
        async with self._sessionmaker() as db:
            stmt = select(Profile.tenant_id).where(Profile.id == principal_id)
            return (await db.execute(stmt)).scalar_one_or_none()

    @_store_call("user_roles")
    async def read_role_rows(self, principal_id: uuid.UUID) -> list[RoleAssociation]:
        async with self._sessionmaker() as db:
            stmt = (
                select(UserRole)
                .where(UserRole.user_id == principal_id)
                .order_by(UserRole.created_at.desc())
            )
            rows = (await db.execute(stmt)).scalars().all()
            return [
                RoleAssociation(id=r.id, role=r.role, tenant_id=r.tenant_id, created_at=r.created_at)
                for r in rows
            ]

    @_store_call("tenant_memberships")
    async def read_memberships(self, principal_id: uuid.UUID) -> list[Membership]:
        async with self._sessionmaker() as db:
            stmt = (
                select(TenantMembership)
                .where(TenantMembership.user_id == principal_id)
                .order_by(TenantMembership.created_at.desc())
            )
            rows = (await db.execute(stmt)).scalars().all()
            return [
                Membership(
                    tenant_id=m.tenant_id,
                    role=MembershipRole.parse(m.role),
                    created_at=m.created_at,
                )
                for m in rows
            ]

    # ---------------------------------------------------------
    # Tenant directory
    # ---------------------------------------------------------
    @_store_call("tenants")
    async def get_tenant(self, tenant_id: uuid.UUID) -> Optional[TenantRecord]:
        async with self._sessionmaker() as db:
            tenant = await db.get(Tenant, tenant_id)
            return _to_tenant_record(tenant) if tenant else None

    @_store_call("tenants")
    async def get_tenants(self, tenant_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, TenantRecord]:
        ids = set(tenant_ids)
        if not ids:
            return {}
        async with self._sessionmaker() as db:
            res = await db.execute(select(Tenant).where(Tenant.id.in_(ids)))
            return {t.id: _to_tenant_record(t) for t in res.scalars().all()}

    @_store_call("tenants")
    async def get_tenant_by_slug(self, slug: str) -> Optional[TenantRecord]:
        async with self._sessionmaker() as db:
            stmt = select(Tenant).where(Tenant.slug == slug.strip().lower()).limit(1)
            tenant = (await db.execute(stmt)).scalar_one_or_none()
            return _to_tenant_record(tenant) if tenant else None

    @_store_call("tenants")
    async def first_tenant(self) -> Optional[TenantRecord]:
        async with self._sessionmaker() as db:
            stmt = select(Tenant).order_by(Tenant.created_at.asc(), Tenant.id.asc()).limit(1)
            tenant = (await db.execute(stmt)).scalar_one_or_none()
            return _to_tenant_record(tenant) if tenant else None

    @_store_call("tenants")
    async def read_owned_tenant_ids(self, principal_id: uuid.UUID) -> list[uuid.UUID]:
        async with self._sessionmaker() as db:
            stmt = (
                select(Tenant.id)
                .where(Tenant.owner_id == principal_id)
                .order_by(Tenant.created_at.asc(), Tenant.id.asc())
            )
            return list((await db.execute(stmt)).scalars().all())

    # ---------------------------------------------------------
    # Self-heal writes
    # ---------------------------------------------------------
    @_store_call("profiles")
    async def write_profile_tenant(self, principal_id: uuid.UUID, tenant_id: uuid.UUID) -> None:
        async with self._sessionmaker() as db:
            profile = await db.get(Profile, principal_id)
            if profile is None:
                db.add(Profile(id=principal_id, tenant_id=tenant_id))
            else:
                profile.tenant_id = tenant_id
            await db.commit()

    @_store_call("user_roles")
    async def write_role_tenant(self, role_id: uuid.UUID, tenant_id: uuid.UUID) -> None:
        async with self._sessionmaker() as db:
            await db.execute(
                update(UserRole).where(UserRole.id == role_id).values(tenant_id=tenant_id)
            )
            await db.commit()

    @_store_call("tenant_memberships")
    async def add_membership(
        self,
        principal_id: uuid.UUID,
        tenant_id: uuid.UUID,
        role: MembershipRole,
    ) -> None:
        """
        Insert a membership if the (tenant, user) pair is not present yet.
        An existing membership is left untouched (its role is never downgraded).
        """
        async with self._sessionmaker() as db:
            stmt = (
                select(TenantMembership.id)
                .where(TenantMembership.tenant_id == tenant_id)
                .where(TenantMembership.user_id == principal_id)
                .limit(1)
            )
            if (await db.execute(stmt)).scalar_one_or_none() is not None:
                return

            db.add(TenantMembership(tenant_id=tenant_id, user_id=principal_id, role=role.value))
            try:
                await db.commit()
            except IntegrityError:
                # lost a race against another writer for the same pair
                await db.rollback()
