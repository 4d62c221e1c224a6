"""Per-client request limits for credential endpoints."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette import status

from .errors import error_body

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return get_remote_address(request)


limiter = Limiter(key_func=get_client_ip)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(
        "request.rate_limited",
        extra={"extra_data": {"path": request.url.path, "client": get_client_ip(request)}},
    )
    return JSONResponse(
        error_body("rate_limited", "Too many requests", {"limit": str(exc.detail)}),
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    )
