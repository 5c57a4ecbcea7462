"""Role-based access control for the activity endpoints. No FastAPI."""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from carshare_activity.security.exceptions import AuthenticationError, AuthorizationError


class Role(Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class Capability(Enum):
    VIEW_LIVE_STREAM = "view_live_stream"
    BROADCAST = "broadcast"
    CLOSE_STREAMS = "close_streams"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_RETENTION = "manage_retention"
    GENERATE_METRICS = "generate_metrics"
    EMERGENCY_CLEANUP = "emergency_cleanup"


# Capability matrix:
# Capability          SUPER_ADMIN  ADMIN  MANAGER  USER
# view_live_stream    ✓            ✓      ✓        ✗
# broadcast           ✓            ✓      ✗        ✗
# close_streams       ✓            ✗      ✗        ✗
# view_analytics      ✓            ✓      ✗        ✗
# manage_retention    ✓            ✓      ✗        ✗
# generate_metrics    ✓            ✓      ✗        ✗
# emergency_cleanup   ✓            ✗      ✗        ✗

_CAPABILITY_ROLES: dict[Capability, FrozenSet[Role]] = {
    Capability.VIEW_LIVE_STREAM: frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.MANAGER}),
    Capability.BROADCAST: frozenset({Role.SUPER_ADMIN, Role.ADMIN}),
    Capability.CLOSE_STREAMS: frozenset({Role.SUPER_ADMIN}),
    Capability.VIEW_ANALYTICS: frozenset({Role.SUPER_ADMIN, Role.ADMIN}),
    Capability.MANAGE_RETENTION: frozenset({Role.SUPER_ADMIN, Role.ADMIN}),
    Capability.GENERATE_METRICS: frozenset({Role.SUPER_ADMIN, Role.ADMIN}),
    Capability.EMERGENCY_CLEANUP: frozenset({Role.SUPER_ADMIN}),
}


def parse_roles(raw: Optional[str]) -> FrozenSet[Role]:
    """Comma-separated role names; unknown names are ignored."""
    roles = set()
    for name in (raw or "").split(","):
        name = name.strip().upper()
        if name in Role.__members__:
            roles.add(Role[name])
    return frozenset(roles)


@dataclass(frozen=True)
class Principal:
    """Caller identity as asserted by the upstream gateway. user_id None means anonymous."""

    user_id: Optional[str] = None
    roles: FrozenSet[Role] = frozenset()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def has_any_role(self, roles: Iterable[Role]) -> bool:
        return bool(self.roles & frozenset(roles))


ANONYMOUS = Principal()


class RBACService:
    """Check a principal against the capability matrix. Raises instead of returning False."""

    def can(self, principal: Principal, capability: Capability) -> bool:
        return principal.has_any_role(_CAPABILITY_ROLES.get(capability, frozenset()))

    def require_authenticated(self, principal: Principal) -> None:
        if not principal.is_authenticated:
            raise AuthenticationError("Authentication required")

    def check_permission(self, principal: Principal, capability: Capability) -> None:
        """Raises AuthenticationError if anonymous, AuthorizationError if the capability is missing."""
        self.require_authenticated(principal)
        if not self.can(principal, capability):
            raise AuthorizationError(
                f"User {principal.user_id} does not have permission for '{capability.value}'"
            )
