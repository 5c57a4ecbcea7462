"""Security-layer exceptions. Typed, no HTTP."""


class SecurityError(Exception):
    """Base for all security-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationError(SecurityError):
    """Raised when the request carries no caller identity."""


class AuthorizationError(SecurityError):
    """Raised when the caller's roles do not grant the capability."""
