"""HTTP layer for LawKita.

Every error leaves the API as an ErrorResponse body with an error code;
stack traces never do.
"""

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..cases.errors import PipelineError
from ..logging import get_logger

logger = get_logger(__name__)


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Body of every error response."""

    success: bool = False
    error: str
    error_code: str
    details: list[ErrorDetail] | None = None


class APIError(HTTPException):
    """HTTPException carrying an error code and structured details."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: list[ErrorDetail] | None = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message)


class JobFailedError(APIError):
    """A crawl job could not run at all (credentials, configuration)."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(500, "JOB_FAILED", message, details)


# Pipeline errors that escape a job; anything unlisted is a 500
PIPELINE_STATUS_CODES = {
    "SOURCE_UNAVAILABLE": 502,
    "EXTRACTION_TRANSPORT": 502,
    "PERSISTENCE_CONFLICT": 409,
}


def _error_response(status_code: int, error: str, error_code: str, details=None, headers=None):
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, error_code=error_code, details=details).model_dump(),
        headers=headers,
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return _error_response(
        exc.status_code,
        exc.message,
        exc.error_code,
        details=exc.details,
        headers={"X-Error-Code": exc.error_code},
    )


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    logger.error(f"Pipeline error on {request.url.path}: {exc}")
    return _error_response(
        PIPELINE_STATUS_CODES.get(exc.error_code, 500),
        str(exc),
        exc.error_code,
        headers={"X-Error-Code": exc.error_code},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return _error_response(500, "An unexpected error occurred", "INTERNAL_ERROR")


def register_exception_handlers(app):
    """Register the handlers, most specific first."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
