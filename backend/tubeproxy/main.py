"""FastAPI application entry point."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from tubeproxy.api.errors import (
    generic_exception_handler,
    request_validation_error_handler,
    video_downloader_error_handler,
)
from tubeproxy.api.router import api_router
from tubeproxy.core.config import settings
from tubeproxy.core.logging import get_logger, setup_logging
from tubeproxy.models.video import HealthResponse
from tubeproxy.services import storage
from tubeproxy.services.errors import VideoDownloaderError
from tubeproxy.services.yt_dlp_service import YtDlpService

__version__ = "0.1.0"

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    logger.info(f"Starting tubeproxy in {settings.ENV} mode on port {settings.PORT}")
    storage.ensure_directory(settings.DOWNLOADS_DIR)
    logger.info(f"Downloads directory: {settings.DOWNLOADS_DIR}")

    version = await asyncio.to_thread(YtDlpService.probe_version)
    if version:
        logger.info(f"yt-dlp {version} is available")
    else:
        logger.warning("yt-dlp is not available; install it with `pip install yt-dlp`")

    yield

    # Shutdown
    logger.info("Shutting down tubeproxy")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="tubeproxy",
        description="HTTP proxy around yt-dlp for fetching and downloading videos",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(VideoDownloaderError, video_downloader_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Finished downloads; the directory is created by the lifespan hook
    app.mount(
        settings.DOWNLOADS_URL_PREFIX,
        StaticFiles(directory=settings.DOWNLOADS_DIR, check_dir=False),
        name="downloads",
    )

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
        description="Check if the service is running",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint.

        Returns:
            Health status response
        """
        return HealthResponse(status="healthy", version=__version__)

    return app


# Create application instance
app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "tubeproxy.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
