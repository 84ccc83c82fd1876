from __future__ import annotations

import os

# Settings are read at import time; tests default to a throwaway SQLite file.
_EXTERNAL_DB = bool(os.getenv("DATABASE_URL_ASYNC"))
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///./.tenant_access_test.db")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.pool import NullPool

# Ensure Base + models are registered before create_all
from tenant_access.db.base import Base  # noqa: E402
import tenant_access.models  # noqa: E402,F401

from tenant_access.core.security import create_access_token  # noqa: E402
from tenant_access.crud.associations import SqlAssociationStore  # noqa: E402
from tenant_access.db.session import create_engine_for, make_sessionmaker  # noqa: E402
from tenant_access.tenancy.resolver import DefaultTenantPolicy  # noqa: E402
from tenant_access.tenancy.service import TenantAccessService  # noqa: E402


# ---------------------------------------------------------
# Database config
# ---------------------------------------------------------
@pytest.fixture()
def database_url_async(tmp_path) -> str:
    if _EXTERNAL_DB:
        return os.environ["DATABASE_URL_ASYNC"]
    return f"sqlite+aiosqlite:///{tmp_path / 'tenant_access.db'}"


# ---------------------------------------------------------
# Engine + schema lifecycle (fresh schema per test)
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(database_url_async: str):
    engine = create_engine_for(database_url_async, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    if _EXTERNAL_DB:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return make_sessionmaker(engine)


# ---------------------------------------------------------
# DB session for assertions / setup
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test setup & assertions ONLY.
    The store under test uses its own sessions, so setup must commit.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


@pytest.fixture()
def store(sessionmaker) -> SqlAssociationStore:
    return SqlAssociationStore(sessionmaker)


# ---------------------------------------------------------
# FastAPI app wired to the test database
# ---------------------------------------------------------
@pytest.fixture()
def navigations() -> list:
    return []


@pytest.fixture()
def access_service(store, navigations) -> TenantAccessService:
    return TenantAccessService(
        store,
        policy=DefaultTenantPolicy(slug=None, allow_any_tenant=False),
        timeout=3.0,
        navigator=navigations.append,
    )


@pytest.fixture()
def app(access_service):
    from tenant_access.main import create_application

    return create_application(service=access_service)


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture()
def auth_headers():
    def _headers(principal_id, **extra) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {create_access_token(principal_id)}"}
        headers.update(extra)
        return headers

    return _headers
