"""Error taxonomy shared by the HTTP layer and the socket layer.

Every failure a client can observe is one of these. Each carries the HTTP
status it maps to and a short machine-readable code that is also used in
socket ``error`` events.
"""


class ChatError(Exception):
    """Base class for client-visible failures."""

    status_code = 400
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(ChatError):
    """Missing, malformed or expired credential."""
    status_code = 401
    code = "auth_error"
    default_message = "Authentication required"


class ValidationError(ChatError):
    """Malformed payload; the operation was not attempted."""
    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"

    def __init__(self, message: str = "", errors: list | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(ChatError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class AuthorizationError(ChatError):
    """Caller is authenticated but not allowed to do this (e.g. not the sender)."""
    status_code = 403
    code = "forbidden"
    default_message = "Unauthorized to perform this action"


class ConflictError(ChatError):
    """Duplicate reaction, room name, favorite, username..."""
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class InvalidTransitionError(ConflictError):
    """A message lifecycle move that the state machine does not allow."""
    code = "invalid_transition"
    default_message = "Invalid message state transition"


class InfrastructureError(ChatError):
    """Store or blob failure. Clients only see the generic message."""
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"
