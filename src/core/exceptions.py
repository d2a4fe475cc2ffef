"""
Exception types shared across the Claw API.
"""


class ClawError(Exception):
    """Base class for all Claw API errors."""


class AuthenticationError(ClawError):
    """Credential missing, malformed, expired or signed with the wrong key."""


class NotFoundError(ClawError):
    """Requested resource does not exist or is not owned by the caller."""


class ProviderError(ClawError):
    """The external game-generation API failed or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, details: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ChannelClosedError(ClawError):
    """Write attempted on an SSE channel whose client has gone away."""
