"""
Error taxonomy and the single boundary that turns errors into HTTP responses.

Guards, the lifecycle engine and the store raise these exceptions; nothing
below the route layer builds a response. Every failure is rendered as

    {"error": "<message>", "code": <status>, "code_error": "<MACHINE_CODE>"}

so clients can branch on ``code`` without parsing prose.
"""

import enum
import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"
    default_message = "internal server error"
    headers: dict[str, str] | None = None

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def body(self, dev_mode: bool = False) -> dict[str, Any]:
        return {"error": self.message, "code": self.status_code, "code_error": self.error_code}


class ValidationError(AppError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "invalid request data"


class ConflictError(AppError):
    status_code = 400
    error_code = "DUPLICATE_RESOURCE"
    default_message = "duplicate resource"


class ConstraintError(AppError):
    """A write broke a foreign key, NOT NULL or check constraint."""

    status_code = 400
    error_code = "CONSTRAINT_VIOLATION"
    default_message = "request violates a data constraint"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "resource not found"


class ReferenceNotFoundError(NotFoundError):
    """A client-supplied foreign key points at nothing: the request is at fault."""

    status_code = 400
    error_code = "INVALID_REFERENCE"
    default_message = "referenced resource not found"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "AUTH_REQUIRED"
    default_message = "unauthorized"

    def __init__(self, message: str | None = None, *, reason: str = "unauthorized"):
        self.reason = reason
        self.trace_id = str(uuid.uuid4())
        super().__init__(message)

    def body(self, dev_mode: bool = False) -> dict[str, Any]:
        out = super().body(dev_mode)
        out["trace_id"] = self.trace_id
        if dev_mode:
            out["reason"] = self.reason
        return out


class RateLimitedError(AppError):
    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        self.headers = {"Retry-After": str(retry_after_seconds)}
        super().__init__(f"Too many requests. Retry in {retry_after_seconds}s")


class AuthFailureReason(str, enum.Enum):
    NO_CREDENTIAL = "no_credential"
    INVALID_TOKEN = "invalid_token"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class AuthFailure(AuthenticationError):
    """Raised by the identity resolver; ``internal`` failures are server faults."""

    def __init__(self, reason: AuthFailureReason, message: str | None = None):
        self.failure = AuthFailureReason(reason)
        super().__init__(message, reason=self.failure.value)
        if self.failure is AuthFailureReason.INTERNAL:
            self.status_code = 500
            self.error_code = "INTERNAL_ERROR"
            if message is None:
                self.message = InternalError.default_message


class InternalError(AppError):
    pass


class ConfigurationError(InternalError):
    default_message = "server misconfigured"


class PersistenceError(InternalError):
    default_message = "database error"


def _status_error_code(status: int) -> str:
    return {
        400: "INVALID_INPUT",
        401: "AUTH_REQUIRED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        429: "RATE_LIMITED",
    }.get(status, "INTERNAL_ERROR" if status >= 500 else "HTTP_ERROR")


def _format_validation_errors(exc: RequestValidationError) -> str:
    msgs = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in {"body", "query", "path"}]
        field = ".".join(loc) or "request"
        msgs.append(f"{field}: {err.get('msg', 'invalid value')}")
    return "; ".join(msgs) or ValidationError.default_message


def register_error_handlers(app: FastAPI, *, dev_mode: bool = False) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"[error] {request.method} {request.url.path} -> {exc.status_code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.body(dev_mode), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        err = ValidationError(_format_validation_errors(exc))
        return JSONResponse(status_code=err.status_code, content=err.body(dev_mode))

    @app.exception_handler(HTTPException)
    async def _http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        content = {
            "error": exc.detail if isinstance(exc.detail, str) else "request failed",
            "code": exc.status_code,
            "code_error": _status_error_code(exc.status_code),
        }
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"[error] unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=InternalError().body(dev_mode))
