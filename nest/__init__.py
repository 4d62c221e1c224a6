"""Application factory and top-level wiring for the Nest gear service.

Configuration, database setup, middlewares, routers and error handlers are
assembled here. Importing ``nest`` yields a ready ``app``; ``nest.main`` adds
logging, health and metrics on top for the served process.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import NestError, http_exception_handler, nest_error_handler, validation_exception_handler
from .core.rate_limit import limiter, rate_limit_exceeded_handler
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Importing the models registers every table with ``Base.metadata``.
from . import models as _models  # noqa: F401

# Session event listeners that feed the realtime change hub.
from .services import realtime as _realtime  # noqa: F401

app = FastAPI(title=settings.APP_NAME)
app.state.limiter = limiter

# ---------- DB init/migrations ----------
Base.metadata.create_all(bind=engine)
run_migrations(engine)

# ---------- Middlewares ----------
# Starlette runs the last added middleware first, so request ids wrap everything.
app.add_middleware(SecurityHeadersMiddleware)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.add_middleware(RequestIdMiddleware)

# ---------- Routers ----------
from .routers import api_activity, api_admin, api_auth, api_checkins, api_gears  # noqa: E402
from .routers import api_notifications, api_requests, api_users, realtime  # noqa: E402

app.include_router(api_auth.router)
app.include_router(api_gears.router)
app.include_router(api_requests.router)
app.include_router(api_checkins.router)
app.include_router(api_users.router)
app.include_router(api_notifications.router)
app.include_router(api_notifications.push_router)
app.include_router(api_admin.router)
app.include_router(api_activity.router)
app.include_router(realtime.router)

# ---------- Exception handling ----------
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(NestError, nest_error_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


__all__ = ["app"]
