import logging
import re
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tenant_access.core.config import settings
import tenant_access.models  # noqa: F401  # force model registration

from tenant_access.api.v1.access import router as access_router
from tenant_access.crud.associations import SqlAssociationStore
from tenant_access.db.session import AsyncSessionLocal
from tenant_access.tenancy.service import TenantAccessService


def configure_logging() -> None:
    logging.basicConfig(
        level=(settings.LOG_LEVEL or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_application(service: Optional[TenantAccessService] = None) -> FastAPI:
    configure_logging()
    app = FastAPI(title="Tenant Access API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local development (Vite frontend)
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        # garage subdomains under the product domain
        allow_origin_regex=r"^https://([a-z0-9-]+\.)?" + re.escape(settings.BASE_DOMAIN) + "$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if service is None:
        service = TenantAccessService.from_settings(SqlAssociationStore(AsyncSessionLocal), settings)
    app.state.access_service = service

    @app.get("/")
    def root():
        return {"status": "ok", "service": "tenant-access"}

    # Routers
    app.include_router(access_router, prefix="/api/v1")

    return app


app = create_application()
