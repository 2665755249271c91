"""FastAPI application entry point."""

import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.api.middleware import ConnectionTracker, RequestLoggingMiddleware, get_connection_tracker
from app.api.v1.router import router as v1_router
from app.config import settings
from app.core.exceptions import DeployError
from app.core.redis import disconnect_redis, initialize_redis
from app.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
    )
    await initialize_redis()

    yield

    # Shutdown
    tracker: ConnectionTracker = app.state.connection_tracker
    tracker.start_shutdown()
    await tracker.wait_for_connections(settings.shutdown_grace_seconds)
    await disconnect_redis()
    logger.info("application.shutdown")


def error_body(
    code: str,
    message: str,
    classification: str,
    details: dict[str, Any] | None = None,
    exc: BaseException | None = None,
) -> dict[str, Any]:
    """Uniform error payload. Tracebacks are included outside production."""
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "classification": classification,
    }
    if details:
        error["details"] = details
    if exc is not None and not settings.is_production:
        error["trace"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return {"success": False, "error": error}


def create_app(tracker: ConnectionTracker | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Static Site Deployer API",
        description="Clones, builds and publishes static sites to a CDN-fronted bucket",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.connection_tracker = tracker or get_connection_tracker()
    app.add_middleware(RequestLoggingMiddleware, tracker=app.state.connection_tracker)

    # Register exception handlers
    @app.exception_handler(DeployError)
    async def deploy_error_handler(request: Request, exc: DeployError) -> JSONResponse:
        """Handle classified pipeline errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                type(exc).__name__.upper(),
                exc.message,
                exc.classification,
                exc.details,
                exc,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report invalid request bodies as 400s."""
        messages = [
            f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(
                "VALIDATIONERROR",
                ", ".join(messages),
                "validation",
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        message = "An unexpected error occurred" if settings.is_production else str(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("INTERNAL_ERROR", message, "internal", exc=exc),
        )

    # Include routers
    app.include_router(v1_router)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
