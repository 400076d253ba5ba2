"""API error taxonomy.

Every error carries a stable machine-readable ``reason`` plus a human
message. They subclass ``HTTPException`` so services can raise them directly,
and ``register_exception_handlers`` renders them as
``{"reason": ..., "message": ...}``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.core.config import settings
from helpdesk.core.structured_logging import build_log_context

logger = logging.getLogger(__name__)


class HelpdeskError(HTTPException):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    reason = "error"

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None):
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message
        self.errors = errors


class ValidationError(HelpdeskError):
    """Bad input shape, enum value or length. User-fixable."""

    status_code = 400
    reason = "validation_error"


class AuthenticationError(HelpdeskError):
    """Missing, invalid or expired session token."""

    status_code = 401
    reason = "authentication_error"

    def __init__(self, message: str = "Not authenticated", **kwargs):
        super().__init__(message, **kwargs)
        self.headers = {"WWW-Authenticate": "Bearer"}


class AuthorizationError(HelpdeskError):
    """Valid identity without the required permission."""

    status_code = 403
    reason = "authorization_error"


class NotFoundError(HelpdeskError):
    """Entity absent (or id malformed)."""

    status_code = 404
    reason = "not_found"


class ConflictError(HelpdeskError):
    """Uniqueness or foreign-key conflict."""

    status_code = 409
    reason = "conflict"


class DependencyError(HelpdeskError):
    """Store or notification channel failure."""

    status_code = 500
    reason = "dependency_error"


_STATUS_REASONS = {
    400: ValidationError.reason,
    401: AuthenticationError.reason,
    403: AuthorizationError.reason,
    404: NotFoundError.reason,
    409: ConflictError.reason,
    429: "rate_limited",
}


def error_body(reason: str, message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"reason": reason, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def _request_context(request: Request) -> dict[str, Any]:
    session = getattr(request.state, "session", None)
    return build_log_context(
        user_id=str(session.user_id) if session else None,
        request_id=request.headers.get("X-Request-ID"),
        route=request.url.path,
        method=request.method,
    )


async def _helpdesk_error_handler(request: Request, exc: HelpdeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.reason, exc.message, extra=_request_context(request))
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.reason, exc.message, errors=exc.errors),
        headers=getattr(exc, "headers", None),
    )


async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    reason = _STATUS_REASONS.get(exc.status_code, "error")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(reason, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    # A malformed id in the path means the entity cannot exist
    if errors and all(err["loc"][:1] == ["path"] for err in errors):
        return JSONResponse(
            status_code=404,
            content=error_body(NotFoundError.reason, "Not found"),
        )
    return JSONResponse(
        status_code=400,
        content=error_body(ValidationError.reason, "Invalid request", errors=errors),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra=_request_context(request))
    debug = None if settings.is_production else f"{type(exc).__name__}: {exc}"
    return JSONResponse(
        status_code=500,
        content=error_body(DependencyError.reason, "Internal server error", debug=debug),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error envelope on an application."""
    app.add_exception_handler(HelpdeskError, _helpdesk_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
