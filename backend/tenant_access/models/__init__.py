# Import models here so Alembic can discover metadata.
from tenant_access.models.tenant import Tenant  # noqa: F401

# The three independent association stores
from tenant_access.models.profile import Profile  # noqa: F401
from tenant_access.models.user_role import UserRole  # noqa: F401
from tenant_access.models.tenant_membership import TenantMembership  # noqa: F401
