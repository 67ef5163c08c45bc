"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from commission_sync import __version__
from commission_sync.api.routes import router
from commission_sync.config import Settings, get_settings
from commission_sync.errors import CommissionError, ConflictError
from commission_sync.store import EntityAPIClient, LedgerStore
from commission_sync.sync.jobs import Clock, utc_now

logger = structlog.get_logger(__name__)


def create_app(
    store: LedgerStore | None = None,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Build the application.

    Without an explicit ``store`` the app talks to the configured entity store
    over HTTP and closes that client on shutdown.
    """
    settings = settings or get_settings()
    owned_client: EntityAPIClient | None = None
    if store is None:
        owned_client = EntityAPIClient(
            base_url=settings.store_api_url,
            token=settings.store_api_token.get_secret_value()
            if settings.store_api_token is not None
            else None,
            timeout=settings.store_timeout,
            max_retries=settings.store_max_retries,
        )
        store = owned_client

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("api_started", version=__version__, store=type(store).__name__)
        yield
        if owned_client is not None:
            await owned_client.close()
        logger.info("api_stopped")

    app = FastAPI(title="Commission Sync", version=__version__, lifespan=lifespan)
    app.state.store = store
    app.state.settings = settings
    app.state.clock = clock

    @app.exception_handler(CommissionError)
    async def commission_error_handler(request: Request, exc: CommissionError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        content = {"error": exc.message}
        if isinstance(exc, ConflictError) and isinstance(exc.details, dict):
            content.update(exc.details)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_unhandled_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or exc.__class__.__name__},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    app.include_router(router)
    return app
