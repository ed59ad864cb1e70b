"""Request-facing error taxonomy.

Each error carries the HTTP status it maps to and a stable machine-readable code.
Validation and authorization errors are raised at the boundary and returned as-is;
anything else is logged and surfaced as an opaque 5xx by the API layer.
"""


class ServiceError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(ServiceError):
    """Malformed or missing request fields."""

    status_code = 400
    code = "invalid_request"


class Unauthorized(ServiceError):
    """No identity attached to the request."""

    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class AccessDenied(ServiceError):
    """Identity present but not entitled to the resource."""

    status_code = 403
    code = "access_denied"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"


class InsufficientTokens(ServiceError):
    """Token balance is below the amount required for the operation."""

    status_code = 402
    code = "insufficient_tokens"

    def __init__(self, current: int, required: int) -> None:
        super().__init__(
            f"Insufficient tokens: {current} available, {required} required"
        )
        self.current = current
        self.required = required
