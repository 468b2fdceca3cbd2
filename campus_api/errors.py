from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


ERROR_STATUS_CODES: dict[str, int] = {
    "validation": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "rate_limited": 429,
    "transient": 503,
}


class ApiError(Exception):
    kind = "validation"
    default_code = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.kind]


class ValidationFailedError(ApiError):
    kind = "validation"
    default_code = "VALIDATION_ERROR"


class UnauthorizedError(ApiError):
    kind = "unauthorized"
    default_code = "UNAUTHORIZED"


class ForbiddenError(ApiError):
    kind = "forbidden"
    default_code = "FORBIDDEN"


class NotFoundError(ApiError):
    kind = "not_found"
    default_code = "NOT_FOUND"


class ConflictError(ApiError):
    kind = "conflict"
    default_code = "CONFLICT"


class RateLimitedError(ApiError):
    kind = "rate_limited"
    default_code = "TOO_MANY_ATTEMPTS"


class TransientError(ApiError):
    kind = "transient"
    default_code = "DATABASE_UNAVAILABLE"


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    payload = {
        "errors": [error],
        "requestId": get_request_id(request),
    }
    return JSONResponse(status_code=status_code, content=payload)
