"""Response envelopes for generated CRUD routes."""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .exceptions import AutoCrudAPIException

logger = logging.getLogger(__name__)

DELETED_MESSAGE = "Document deleted successfully"


class PaginationResult(BaseModel):
    """Pagination metadata returned alongside a list page."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = Field(description="Documents matching the filter")
    page: int = Field(description="Current page, starting at 1")
    limit: int = Field(description="Page size")
    total_pages: int = Field(description="Number of pages at this page size")
    has_next_page: bool = Field(description="Whether a later page exists")


class ListResponse(BaseModel):
    """List route payload."""

    data: List[Any] = Field(default_factory=list)
    pagination: Optional[PaginationResult] = None


class DeleteResponse(BaseModel):
    """Delete route payload."""

    success: bool = True
    message: str = DELETED_MESSAGE
    id: str


def encode_document(document: Any) -> Any:
    """Convert a document (or list of documents) into JSON-compatible data."""
    return jsonable_encoder(document, custom_encoder={ObjectId: str})


def list_payload(
    data: List[Any], pagination: Optional[PaginationResult] = None
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"data": encode_document(data)}
    if pagination is not None:
        fields["pagination"] = pagination
    return ListResponse(**fields).model_dump(by_alias=True, exclude_unset=True)


def error_message(exc: BaseException, fallback: str) -> str:
    """Get the client-facing message for an exception.

    Args:
        exc: Exception raised while handling the request
        fallback: Message used when the exception carries none

    Returns:
        Error message
    """
    if isinstance(exc, AutoCrudAPIException):
        return exc.message
    if isinstance(exc, ValidationError):
        field_errors = [
            f"{' -> '.join(str(loc) for loc in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ]
        if field_errors:
            return "Validation failed: " + "; ".join(field_errors)
        return fallback
    if isinstance(exc, HTTPException):
        return str(exc.detail) if exc.detail else fallback
    return str(exc) or fallback


def error_response(
    request: Request,
    exc: BaseException,
    *,
    status_code: int = 500,
    fallback: str = "Request failed",
) -> JSONResponse:
    """Build the ``{"error": true, "message": ...}`` response for a failure.

    AutoCrudAPIException subclasses keep their own status code; any other
    exception is reported with ``status_code``.

    Args:
        request: Request being handled
        exc: Exception raised while handling it
        status_code: Status for exceptions without their own
        fallback: Message used when the exception carries none

    Returns:
        JSONResponse with the error envelope
    """
    if isinstance(exc, AutoCrudAPIException):
        status_code = exc.status_code
    message = error_message(exc, fallback)
    extra = {
        "status_code": status_code,
        "path": request.url.path,
        "method": request.method,
    }
    if status_code >= 500:
        logger.error(f"CRUD request failed: {message}", exc_info=exc, extra=extra)
    else:
        logger.debug(f"CRUD request rejected: {message}", extra=extra)
    if isinstance(exc, AutoCrudAPIException):
        content = exc.to_dict()
    else:
        content = {"error": True, "message": message}
    return JSONResponse(status_code=status_code, content=content)
