"""
FastAPI application factory.

* Registers REST routes under ``/api`` and the socket channel at ``/ws``.
* Starts / stops the background dispatch worker via lifespan events.
* Maps domain and auth errors to HTTP responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridehail.api.middleware import limiter
from ridehail.api.routes import admin, auth, drivers, trips, ws
from ridehail.api.security import AuthError
from ridehail.config import settings
from ridehail.domain.entities import InvalidStateTransition
from ridehail.workers import dispatcher as _dispatcher

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the dispatch worker on startup; stop on shutdown."""
    await _dispatcher.start_dispatch_loop()
    yield
    await _dispatcher.stop_dispatch_loop()


async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


async def _transition_error_handler(
    request: Request, exc: InvalidStateTransition
) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride-Hailing Dispatch API",
        description=(
            "Riders request trips, drivers accept and fulfil them.  Trip "
            "status is server-authoritative and pushed to both parties over "
            "a socket channel."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain / auth errors
    app.add_exception_handler(AuthError, _auth_error_handler)
    app.add_exception_handler(InvalidStateTransition, _transition_error_handler)

    # Routers
    app.include_router(auth.router, prefix="/api")
    app.include_router(trips.router, prefix="/api")
    app.include_router(drivers.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")
    app.include_router(admin.health_router, prefix="/api")
    app.include_router(ws.router)

    return app
