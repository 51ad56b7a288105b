class ShareItError(Exception):
    """Base class for business rule failures raised by the booking service."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ShareItError):
    """A referenced user, item or booking does not exist."""


class ConditionsNotMetError(ShareItError):
    """A business rule rejected the request."""
