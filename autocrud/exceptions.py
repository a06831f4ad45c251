"""Exception classes for autocrud.

Errors raised inside generated handlers are caught at the handler boundary
and rendered as ``{"error": true, "message": ...}``. Exceptions deriving from
:class:`AutoCrudAPIException` carry their own HTTP status code; anything else
takes the status of the handler it was raised in.
"""

from typing import Any, Dict, Optional


class AutoCrudError(Exception):
    """Base class for all autocrud errors."""

    pass


class AutoCrudAPIException(AutoCrudError):
    """Error that maps onto an HTTP error response.

    Attributes:
        message: Human-readable message returned to the client
        status_code: HTTP status code of the response
        error_code: Machine-readable error code (used in logs)
        details: Optional extra context (logged, never returned)
    """

    default_message = "Request failed"
    default_status_code = 500
    default_error_code = "error"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message, defaults to the class default
            status_code: HTTP status code, defaults to the class default
            error_code: Error code, defaults to the class default
            details: Additional error context
        """
        self.message = message or self.default_message
        self.status_code = status_code or self.default_status_code
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Render the error envelope.

        Returns:
            Dictionary with ``error`` and ``message`` keys
        """
        return {"error": True, "message": self.message}


class MissingIdentifierError(AutoCrudAPIException):
    """Raised when a route requiring a document id received none."""

    default_message = "ID is required"
    default_status_code = 400
    default_error_code = "missing_identifier"


class BodyValidationError(AutoCrudAPIException):
    """Raised when the configured body predicate rejects a request body."""

    default_message = "Validation failed"
    default_status_code = 400
    default_error_code = "validation_failed"


class DocumentNotFoundError(AutoCrudAPIException):
    """Raised when no document matches the requested id."""

    default_message = "Document not found"
    default_status_code = 404
    default_error_code = "not_found"
