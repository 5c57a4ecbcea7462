"""Security: caller identity and role-based capability checks. No FastAPI."""

from carshare_activity.security.exceptions import (
    AuthenticationError,
    AuthorizationError,
    SecurityError,
)
from carshare_activity.security.rbac import (
    ANONYMOUS,
    Capability,
    Principal,
    RBACService,
    Role,
    parse_roles,
)

__all__ = [
    "ANONYMOUS",
    "AuthenticationError",
    "AuthorizationError",
    "Capability",
    "Principal",
    "RBACService",
    "Role",
    "SecurityError",
    "parse_roles",
]
