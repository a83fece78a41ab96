"""Error taxonomy and user-facing error messages."""

from __future__ import annotations

STANDARD_ERROR_MESSAGE = "Something went wrong while talking to the AI service. Please try again."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
DISCONNECTED_MESSAGE = (
    "The AI service is not connected. Add an API key to the configuration "
    "and try again."
)


class PromptStudioError(Exception):
    """Base class for all errors raised by prompt_studio."""


class TransportError(PromptStudioError):
    """The completion stream failed to open or failed mid-flight."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TransportError):
    """The completion backend rejected the request with a rate limit."""

    def __init__(self, message: str = RATE_LIMIT_MESSAGE, retry_after: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class NotFoundError(PromptStudioError):
    """A story, version or template id does not exist."""


class VersionInvariantViolation(PromptStudioError):
    """The operation would leave a story without exactly one active version."""


class TurnInProgressError(PromptStudioError):
    """A turn is already streaming or committing for this conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"A response is already being generated for conversation '{conversation_id}'")
        self.conversation_id = conversation_id


def user_facing_message(error: BaseException) -> str:
    """Map an exception to the text shown to the user in the chat."""
    if isinstance(error, RateLimitedError):
        return RATE_LIMIT_MESSAGE
    if isinstance(error, TransportError):
        reason = str(error).strip()
        return f"The AI service failed to respond: {reason}" if reason else STANDARD_ERROR_MESSAGE
    if isinstance(error, PromptStudioError):
        return str(error) or STANDARD_ERROR_MESSAGE
    return STANDARD_ERROR_MESSAGE
