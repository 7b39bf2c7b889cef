"""Exception handlers rendering every failure in the standard envelope."""

from typing import Any, Optional
from uuid import uuid4

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from signalhub.config import Settings
from signalhub.errors import AppError
from signalhub.models.response import ApiResponse, ErrorBody

logger = structlog.get_logger(__name__)

ROUTE_GROUPS = {
    "auth": "/api/v1/auth",
    "signals": "/api/v1/signals",
    "users": "/api/v1/users",
    "docs": "/docs",
}


def error_response(
    status_code: int,
    message: str,
    code: str,
    details: Any = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Build an error envelope response."""
    envelope = ApiResponse[None](
        success=False,
        message=message,
        error=ErrorBody(code=code, details=details),
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Install handlers for domain, validation, HTTP and unexpected errors."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "request_failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        details = None if settings.is_production else exc.details
        return error_response(exc.status_code, exc.message, exc.code, details, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report every invalid field as ``{field, message}``."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", ()) if loc != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        logger.warning(
            "validation_error",
            correlation_id=_correlation_id(request),
            path=request.url.path,
            errors=errors,
        )
        return error_response(400, "Validation failed", "VALIDATION_FAILED", {"errors": errors})

    @app.exception_handler(asyncpg.UniqueViolationError)
    async def handle_unique_violation(
        request: Request, exc: asyncpg.UniqueViolationError
    ) -> JSONResponse:
        logger.warning("unique_violation", path=request.url.path, constraint=exc.constraint_name)
        return error_response(409, "Resource already exists", "CONFLICT")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == 404:
            message = f"Route not found: {request.method} {request.url.path}"
            logger.warning("route_not_found", path=request.url.path, method=request.method)
            return error_response(404, message, "NOT_FOUND", {"availableRoutes": ROUTE_GROUPS})
        return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR", headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        """Programming or unknown errors; detail only outside production."""
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            correlation_id=_correlation_id(request),
        )
        if settings.is_production:
            return error_response(500, "Internal server error", "INTERNAL_ERROR")
        return error_response(
            500,
            str(exc) or "Something went wrong",
            "INTERNAL_ERROR",
            {"type": type(exc).__name__},
        )
