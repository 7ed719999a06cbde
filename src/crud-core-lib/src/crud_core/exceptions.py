"""
crud_core.exceptions — Error taxonomy for the CRUD dispatch handler.

Every failure the handler can report is a CrudError subclass carrying a
stable machine-readable kind and the HTTP status it maps to.  Messages are
shown to callers verbatim, so they must never contain ARNs, table names or
stack detail.
"""

from __future__ import annotations

from crud_core.models import ErrorKind


class CrudError(Exception):
    """Base class for every error surfaced in a Response Envelope."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(CrudError):
    """The envelope itself is malformed or missing required fields."""

    kind = ErrorKind.BAD_REQUEST
    status_code = 400
    default_message = "Malformed request envelope"


class UnsupportedOperation(CrudError):
    kind = ErrorKind.UNSUPPORTED_OPERATION
    status_code = 400
    default_message = "Unsupported operation"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Unsupported operation {operation!r}")


class InvalidArgument(CrudError):
    """The operation payload is malformed (missing key, bad expression, ...)."""

    kind = ErrorKind.INVALID_ARGUMENT
    status_code = 400
    default_message = "Invalid operation payload"


class NotFound(CrudError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Item not found"


class PreconditionFailed(CrudError):
    """A conditional write was rejected by the store.

    Not produced by the current operation set; reserved for conditional
    writes passed through update().
    """

    kind = ErrorKind.PRECONDITION_FAILED
    status_code = 409
    default_message = "Conditional check failed"


class StoreUnavailable(CrudError):
    """Downstream connectivity, throttling or service failure.

    Attributes:
        error_code: The boto error code (or exception class name) that caused it.
                    Logged, never returned to the caller.
    """

    kind = ErrorKind.STORE_UNAVAILABLE
    status_code = 503
    default_message = "Table store is temporarily unavailable"

    def __init__(self, message: str | None = None, *, error_code: str | None = None) -> None:
        self.error_code = error_code
        super().__init__(message)


class InternalError(CrudError):
    kind = ErrorKind.INTERNAL_ERROR
    status_code = 500
    default_message = "Internal server error"
