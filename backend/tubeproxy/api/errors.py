"""Global exception handlers for API errors."""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tubeproxy.core.logging import get_logger
from tubeproxy.models.video import ErrorResponse
from tubeproxy.services.errors import VideoDownloaderError

logger = get_logger(__name__)

# Error codes stay server-side; clients only see the message
STATUS_CODE_MAP = {
    "MISSING_INPUT": status.HTTP_400_BAD_REQUEST,
    "INVALID_URL": status.HTTP_400_BAD_REQUEST,
    "INVALID_QUALITY": status.HTTP_400_BAD_REQUEST,
    "JOB_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "EXTRACTOR_UNAVAILABLE": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "YTDLP_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "YTDLP_TIMEOUT": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "PARSE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "FILE_NOT_FOUND": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "STORAGE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

CLIENT_ERROR_CODES = {"MISSING_INPUT", "INVALID_URL", "INVALID_QUALITY", "JOB_NOT_FOUND"}


def _error_json(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


async def video_downloader_error_handler(
    request: Request, exc: VideoDownloaderError
) -> JSONResponse:
    """Handle all VideoDownloaderError exceptions.

    Args:
        request: FastAPI request
        exc: Domain exception

    Returns:
        JSON response with the error message
    """
    status_code = STATUS_CODE_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if exc.code in CLIENT_ERROR_CODES:
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.code} - {exc.message}")
    else:
        logger.warning(
            f"Domain error on {request.method} {request.url.path}: {exc.code} - {exc.message}"
        )

    return _error_json(status_code, exc.message)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed request bodies with 400 instead of FastAPI's 422."""
    fields = sorted({
        str(err["loc"][-1]) for err in exc.errors() if err.get("loc")
    })
    message = f"Invalid request: {', '.join(fields)}" if fields else "Invalid request body"
    logger.info(f"Rejected {request.method} {request.url.path}: {message}")
    return _error_json(status.HTTP_400_BAD_REQUEST, message)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Args:
        request: FastAPI request
        exc: Unexpected exception

    Returns:
        JSON response with generic error
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_json(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
    )
