"""
FastAPI application factory.

* Registers routes for profiles, pickup requests, trips, invitations,
  calendars, provider documents and admin.
* Starts / stops the background expiry sweeper via lifespan events.
* Wraps every error in the ``{success, data, error}`` envelope.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from pickup_coord.api.errors import register_error_handlers
from pickup_coord.api.middleware import limiter
from pickup_coord.api.routes import (
    admin,
    calendar,
    documents,
    invitations,
    pickup_requests,
    profiles,
    trips,
)
from pickup_coord.config import settings
from pickup_coord.infrastructure.redis_client import close_redis
from pickup_coord.workers import sweeper as _sweeper

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiry sweeper on startup; stop it and Redis on shutdown."""
    if settings.sweeper_enabled:
        await _sweeper.start_sweeper()
    yield
    if settings.sweeper_enabled:
        await _sweeper.stop_sweeper()
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pickup Coordination API",
        description=(
            "Coordinates shared pickups: requesters post pickup requests, "
            "providers group them into 3-seat trips by invitation, and "
            "deadlines expire or lock whatever is left behind."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_error_handlers(app)

    # Routers
    for module in (profiles, pickup_requests, trips, invitations, calendar, documents, admin):
        app.include_router(module.router, prefix="/api/v1")

    return app
