"""
Inventory API - Main FastAPI Application

Read-mostly product API with a cache-aside layer:
- SQLAlchemy async persistence (PostgreSQL in production)
- Redis or in-process cache selected once at startup
- Fail-open caching: the API keeps serving from the database when the
  cache is unreachable
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

from .api.endpoints.health import router as health_router
from .api.endpoints.products import router as products_router
from .core.clock import Clock, system_clock
from .core.config import Settings, get_settings
from .core.database import DatabaseManager
from .core.logging import configure_logging
from .db.seed import seed_products
from .domain.errors import (
    ConflictError,
    InventoryError,
    NotFoundError,
    ValidationError,
)
from .infrastructure.cache.factory import build_cache_backend

logger = structlog.get_logger()


def _error_body(error: str, message: str, details: Optional[dict] = None) -> dict:
    return {"error": error, "message": message, "details": details or {}}


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors into JSON responses."""

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(exc.error_code, exc.message, jsonable_encoder(exc.details)),
        )

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_body(exc.error_code, exc.message, jsonable_encoder(exc.details)),
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(exc.error_code, exc.message, jsonable_encoder(exc.details)),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(
                "VALIDATION_ERROR",
                "Request validation failed",
                {"errors": jsonable_encoder(exc.errors())},
            ),
        )

    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        logger.error(
            "Unhandled inventory error",
            error_code=exc.error_code,
            error=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )


def create_app(settings: Optional[Settings] = None, clock: Clock = system_clock) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()

    # Application lifecycle management
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(
            settings.SERVICE_NAME,
            log_level=settings.LOG_LEVEL,
            json_logs=settings.LOG_JSON,
        )
        logger.info(
            "Starting Inventory API",
            version=settings.SERVICE_VERSION,
            environment=settings.ENVIRONMENT,
            cache_backend=settings.CACHE_BACKEND,
        )

        database = DatabaseManager(settings)
        await database.initialize()
        app.state.database = database

        if settings.SEED_DATABASE:
            async with database.get_session() as session:
                await seed_products(session, clock=clock)

        cache_backend = build_cache_backend(settings, clock=clock)
        await cache_backend.initialize()
        app.state.cache_backend = cache_backend
        app.state.clock = clock

        logger.info("Inventory API started successfully")

        yield

        # Shutdown
        logger.info("Shutting down Inventory API")
        try:
            await cache_backend.close()
        except Exception as e:
            logger.error("Error closing cache backend", error=str(e))
        await database.close()
        logger.info("Application shutdown completed")

    app = FastAPI(
        title="Inventory API",
        description="Product inventory API with a cache-aside layer",
        version=settings.SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Include API routers
    app.include_router(health_router)
    app.include_router(products_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "inventory.main:app",
        host=_settings.API_HOST,
        port=_settings.API_PORT,
        reload=_settings.is_development,
    )
