"""Exception handlers rendering the `{error_code, message, details}` envelope."""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import settings
from core.exceptions import AppException, ErrorCode, TransientError

logger = structlog.get_logger()

# Seconds a client should wait before retrying a TransientError
RETRY_AFTER_SECONDS = 1


def _envelope(error_code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {"error_code": error_code, "message": message, "details": details}


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Domain errors carry their own status code and error code."""
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "app_exception",
            error_code=exc.error_code.value,
            status_code=exc.status_code,
            message=exc.message,
        )

        message = exc.message
        details = exc.details
        if exc.status_code >= 500 and settings.is_production:
            # Collaborator failures may echo upstream responses
            message = "A downstream service failed"
            details = None

        headers = None
        if isinstance(exc, TransientError):
            headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(exc.error_code.value, message, details),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Routing errors (404 unknown path, 405 wrong method)."""
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope("HTTP_ERROR", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Request body/query failed schema validation."""
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.info("request_validation_failed", errors=errors)
        return JSONResponse(
            status_code=422,
            content=_envelope(
                ErrorCode.VALIDATION_ERROR.value, "Request validation failed", errors
            ),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error=str(exc),
            exc_info=exc,
        )
        message = "An unexpected error occurred" if settings.is_production else str(exc)
        return JSONResponse(
            status_code=500,
            content=_envelope(
                ErrorCode.INTERNAL_ERROR.value, message, {"request_id": request_id}
            ),
        )
