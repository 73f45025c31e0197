"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from lunch_tracker.api.groups import router as groups_router
from lunch_tracker.api.restaurants import router as restaurants_router
from lunch_tracker.app_logging import configure_logging
from lunch_tracker.containers import AppContainer
from lunch_tracker.domain.errors import (
    LunchTrackerError,
    StoreSubscriptionError,
    StoreWriteError,
    SuggestionServiceError,
    ValidationError,
)

_STATUS_CODES: dict[type[LunchTrackerError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StoreWriteError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StoreSubscriptionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SuggestionServiceError: status.HTTP_502_BAD_GATEWAY,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level, container.settings.environment)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.start_resources()
        except LunchTrackerError:
            logger.exception("Failed to load groups and catalog")
            raise
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    async def require_live_stream(request: Request) -> None:
        request.app.state.container.stream_status.check()

    live_stream = [Depends(require_live_stream)]
    app.include_router(groups_router, dependencies=live_stream)
    app.include_router(restaurants_router, dependencies=live_stream)

    @app.exception_handler(LunchTrackerError)
    async def handle_error(request: Request, exc: LunchTrackerError) -> JSONResponse:
        status_code = _STATUS_CODES.get(
            type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> JSONResponse:
        """Report whether the change stream still follows the backing store."""
        failure = app.state.container.stream_status.failure
        if failure is not None:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "degraded", "detail": str(failure)},
            )
        return JSONResponse(content={"status": "ok"})

    return app
