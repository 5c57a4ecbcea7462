"""Domain-specific exceptions. Pure domain layer — no infrastructure."""


class DomainError(Exception):
    """Base for all domain-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DomainValidationError(DomainError):
    """Raised when domain validation rules are violated."""


class InvalidMetadataError(DomainError):
    """Raised when metadata is not JSON-serializable or otherwise invalid."""


class InvalidEventPatternError(DomainError):
    """Raised when an event type or listener pattern names an unknown namespace or is malformed."""


class InvalidRetentionPolicyError(DomainError):
    """Raised when a retention policy has no name or a retention window below one day."""


class DuplicateRetentionPolicyError(DomainError):
    """Raised when a retention policy with the same name is already registered."""


class RetentionPolicyNotFoundError(DomainError):
    """Raised when removing a retention policy that is not registered."""
