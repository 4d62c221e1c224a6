from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class NestError(Exception):
    """Base class for domain errors raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "nest_error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(NestError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(NestError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"

    def __init__(self, gear_name: str, requested: int, available: int) -> None:
        super().__init__(
            f"Not enough available units for {gear_name}. Requested {requested}, available {available}.",
            details={"gear": gear_name, "requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class PermissionDeniedError(NestError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class ActionDeniedError(NestError):
    """A user-administration guard refused the action before any write."""

    code = "action_denied"


_HTTP_CODES = {
    status.HTTP_400_BAD_REQUEST: "bad_request",
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_409_CONFLICT: "conflict",
}


def error_body(code: str, message: str, details: Any | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return body


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    return JSONResponse(
        error_body(
            _HTTP_CODES.get(exc.status_code, "http_error"),
            detail if isinstance(detail, str) else "Error",
            detail if isinstance(detail, dict) else None,
        ),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def nest_error_handler(request: Request, exc: NestError) -> JSONResponse:
    return JSONResponse(error_body(exc.code, exc.message, exc.details), status_code=exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        error_body("validation_error", "Validation failed", {"errors": jsonable_encoder(exc.errors())}),
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
