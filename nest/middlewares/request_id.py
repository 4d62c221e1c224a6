from __future__ import annotations

import logging
import re
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("nest_request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("nest_principal", default=None)
logger = logging.getLogger("nest.request")

_CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_PROBE_PATHS = frozenset({"/health", "/metrics"})


def _incoming_id(raw: str | None) -> str:
    if raw and _CLIENT_ID_RE.match(raw):
        return raw
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate log lines of one request and log how it ended.

    A well-formed client supplied ``X-Request-ID`` is kept, anything else is
    replaced. Health and metrics probes log at DEBUG.
    """

    header_name = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_id(request.headers.get(self.header_name))
        id_token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        request.state.request_id = request_id
        started = time.perf_counter()
        path = request.url.path
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request.failed", extra={"extra_data": {"method": request.method, "path": path}})
            raise
        finally:
            principal = principal_ctx_var.get()
            request_id_ctx_var.reset(id_token)
            principal_ctx_var.reset(principal_token)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[self.header_name] = request_id
        data = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
        }
        if principal:
            data["principal"] = principal
        level = logging.DEBUG if path in _PROBE_PATHS else logging.INFO
        logger.log(level, "request.completed", extra={"extra_data": data})
        return response
