"""Error taxonomy shared by services and the HTTP layer."""

from typing import Optional


class ChatError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ChatError):
    """Malformed, missing or out-of-range request fields."""

    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(ChatError):
    """No usable credentials were supplied."""

    status_code = 401
    default_message = "No token provided"


class InvalidToken(ChatError):
    """Credentials were supplied but failed verification."""

    status_code = 401
    default_message = "Invalid or expired token"


class NotFound(ChatError):
    """Record is missing or owned by someone else."""

    status_code = 404
    default_message = "Not found"


class UpstreamUnavailable(ChatError):
    """The LLM provider rejected the call for quota or rate reasons."""

    status_code = 429
    default_message = "Service temporarily unavailable. Please try again later."


class UpstreamError(ChatError):
    """Any other failure reported by the LLM provider."""

    status_code = 500
    default_message = "Failed to generate response"


class EmailTaken(InvalidInput):
    """Another account already uses this email."""

    default_message = "Email is already in use"
