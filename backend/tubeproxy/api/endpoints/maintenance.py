"""Status and retention endpoints."""
import asyncio

from fastapi import APIRouter

from tubeproxy.core.config import settings
from tubeproxy.core.logging import get_logger
from tubeproxy.models.video import CleanupResponse, ErrorResponse, StatusResponse
from tubeproxy.services import storage
from tubeproxy.services.yt_dlp_service import YtDlpService

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Service status",
    description="Report whether yt-dlp can be executed; probed on every call",
)
async def get_status() -> StatusResponse:
    version = await asyncio.to_thread(YtDlpService.probe_version)
    if version is None:
        return StatusResponse(
            yt_dlp="unavailable",
            message="Please install yt-dlp",
        )
    return StatusResponse(
        yt_dlp="available",
        message="Server is ready",
        version=version,
    )


@router.delete(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete old downloads",
    description="Delete downloaded files older than the retention threshold",
    responses={500: {"description": "Filesystem error", "model": ErrorResponse}},
)
async def cleanup_downloads() -> CleanupResponse:
    """Run the retention sweep over the downloads directory."""
    deleted = await asyncio.to_thread(
        storage.purge_expired,
        settings.DOWNLOADS_DIR,
        settings.retention_max_age_seconds,
    )
    return CleanupResponse(
        success=True,
        deleted_files=deleted,
        message=f"Deleted {deleted} old file(s)",
    )
