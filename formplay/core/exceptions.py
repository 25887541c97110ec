"""
Error taxonomy for the report workflow.

Services raise these exceptions; the API layer maps them onto HTTP
responses through a single exception handler registered in ``main.py``.
"""

from typing import Any, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from formplay.core.logging import logger


class FormPlayError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal error"

    def __init__(self, detail: Optional[str] = None, **context: Any):
        self.detail = detail or self.default_detail
        self.context = context
        super().__init__(self.detail)


class ValidationError(FormPlayError):
    """Payload does not satisfy the report schema. Nothing was persisted."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid report payload"


class Forbidden(FormPlayError):
    """Actor role or report status does not allow the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied to this report"


class NotFound(FormPlayError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(FormPlayError):
    """A concurrent write won the race; the caller must re-fetch."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Report was modified concurrently, reload and retry"


class ParseError(FormPlayError):
    """The PDF template is not a well-formed PDF."""

    status_code = 422
    default_detail = "Malformed PDF document"


class Unavailable(FormPlayError):
    """A best-effort side channel (email, calendar, snapshot store) failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Side channel unavailable"


async def formplay_error_handler(request: Request, exc: FormPlayError) -> JSONResponse:
    """Render a domain error as a JSON response."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.warning(
            f"{request.method} {request.url.path} rejected "
            f"({exc.__class__.__name__}): {exc.detail}"
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are rejected like any other invalid payload."""
    logger.warning(f"{request.method} {request.url.path} rejected: invalid payload")
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": jsonable_encoder(exc.errors())},
    )
