"""Application-layer exceptions. Do not reuse domain exceptions."""


class ApplicationError(Exception):
    """Base for all application-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TrackingFailureError(ApplicationError):
    """Raised when an activity record could not be persisted. Nothing was published."""


class ConnectionClosedError(ApplicationError):
    """Raised when writing to a live-stream channel that is closed or can no longer keep up."""


class ArchiveFailureError(ApplicationError):
    """Raised when records could not be written to the archive sink. Nothing was deleted."""
