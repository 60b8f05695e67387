"""Error taxonomy shared by the store, the chat core and the API layer.

Every error carries a stable ``code`` that is sent to the originating
connection as ``error{code, message, event}``. None of them is fatal to the
process: socket handlers report them, HTTP routes map them to status codes.
"""


class ChatError(Exception):
    """Base class for errors reported back to a single connection."""

    code = "chat_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ChatError):
    """Conversation absent, or the connection has not joined one."""

    code = "not_found"


class UnauthorizedError(ChatError):
    """An agent acted on a conversation it does not own."""

    code = "unauthorized"


class ValidationFailure(ChatError):
    """An inbound event is missing a required field or has a bad value."""

    code = "validation_failed"


class InvalidTransitionError(ChatError):
    """The requested status change is not allowed from the current status."""

    code = "invalid_transition"


class UpstreamFailure(ChatError):
    """The session store or the reply generator is unavailable."""

    code = "upstream_failure"
