# backend/tenant_access/core/config.py

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict


def _strip_asyncpg_unsupported_params(url: str) -> str:
    """
    asyncpg does NOT accept sslmode or channel_binding as connect kwargs.
    If these appear in the URL query, SQLAlchemy can end up passing them to
    asyncpg.connect(), causing:
      TypeError: connect() got an unexpected keyword argument 'sslmode'
    """
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = parse_qsl(parts.query, keep_blank_values=True)
    filtered = [(k, v) for (k, v) in params if k not in {"sslmode", "channel_binding"}]
    new_query = urlencode(filtered, doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, new_query, parts.fragment))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -----------------------------
    # Environment
    # -----------------------------
    # Use: development | staging | production
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # -----------------------------
    # DB
    # -----------------------------
    DATABASE_URL_ASYNC: str

    # -----------------------------
    # JWT (issued by the identity provider; create_access_token is for dev/tests)
    # -----------------------------
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # -----------------------------
    # Tenant resolution
    # -----------------------------
    # Slug of the tenant used when a principal has no usable association.
    # Unset means the default-tenant step is skipped.
    DEFAULT_TENANT_SLUG: str | None = None
    # Last-resort step: pick the oldest tenant in the system.
    ALLOW_ANY_TENANT_FALLBACK: bool = True
    # Bounded wait for one resolution/routing pass (seconds).
    RESOLUTION_TIMEOUT_SECONDS: float = 3.0
    # Resolved/failed passes are reused for this long (seconds); principals
    # idle for longer are forgotten.
    RESOLUTION_CACHE_TTL_SECONDS: float = 300.0
    # Upper bound on principals whose resolution state is kept in memory.
    RESOLUTION_CACHE_MAX_PRINCIPALS: int = 10_000

    # -----------------------------
    # Domain context
    # -----------------------------
    # Apex domain of the product, e.g. "garagehub.app". Hosts below it are
    # treated as tenant-scoped (staff) entry points.
    BASE_DOMAIN: str = "localhost"

    @property
    def DATABASE_URL_ASYNC_CLEAN(self) -> str:
        return _strip_asyncpg_unsupported_params(self.DATABASE_URL_ASYNC)

    def model_post_init(self, __context) -> None:  # pydantic v2 hook
        env = (self.ENVIRONMENT or "").strip().lower()

        # Enforce that we never run staging/production with a placeholder secret.
        if env in {"staging", "production"}:
            if not self.JWT_SECRET or self.JWT_SECRET.strip() == "dev-secret-change-me":
                raise ValueError("JWT_SECRET must be set to a strong value in staging/production.")
            if len(self.JWT_SECRET.strip()) < 32:
                raise ValueError("JWT_SECRET is too short; use at least 32 characters in staging/production.")

        # Light sanity checks (all envs)
        if self.JWT_ALGORITHM not in {"HS256"}:
            raise ValueError(f"Unsupported JWT_ALGORITHM={self.JWT_ALGORITHM!r}. Allowed: HS256")

        if self.RESOLUTION_TIMEOUT_SECONDS <= 0:
            raise ValueError("RESOLUTION_TIMEOUT_SECONDS must be positive.")

        if self.RESOLUTION_CACHE_TTL_SECONDS <= 0:
            raise ValueError("RESOLUTION_CACHE_TTL_SECONDS must be positive.")

        if self.RESOLUTION_CACHE_MAX_PRINCIPALS <= 0:
            raise ValueError("RESOLUTION_CACHE_MAX_PRINCIPALS must be positive.")

        if self.DEFAULT_TENANT_SLUG is not None:
            slug = self.DEFAULT_TENANT_SLUG.strip().lower()
            self.DEFAULT_TENANT_SLUG = slug or None


# this must exist for: `from tenant_access.core.config import settings`
settings = Settings()
