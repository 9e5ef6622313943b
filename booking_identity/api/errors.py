"""Exception handlers translating identity errors into HTTP responses."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.errors import IdentityError, RateLimitedError

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    message: str,
    code: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"detail": message, "code": code}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install consistent handlers for domain, validation and unexpected errors."""

    @app.exception_handler(IdentityError)
    async def handle_identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        logger.info(
            "%s %s rejected with %s (%s)", request.method, request.url.path, exc.status_code, exc.error_code
        )
        headers = None
        if isinstance(exc, RateLimitedError) and exc.retry_after_seconds:
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return _error_response(exc.status_code, exc.message, exc.error_code, exc.detail, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details: dict[str, Any] = {}
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
            details[".".join(location) or "body"] = error.get("msg", "invalid value")
        return _error_response(status.HTTP_400_BAD_REQUEST, "Validation Error", "validation_error", details)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        # Store and transport failures: log everything, echo nothing.
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal server error", "server_error")
