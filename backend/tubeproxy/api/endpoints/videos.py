"""Video-related API endpoints."""
import asyncio
from urllib.parse import quote

from fastapi import APIRouter, status

from tubeproxy.core.config import settings
from tubeproxy.core.logging import get_logger
from tubeproxy.models.video import (
    DownloadRequest,
    DownloadResponse,
    ErrorResponse,
    VideoInfo,
    VideoInfoRequest,
)
from tubeproxy.services import download_jobs
from tubeproxy.services.errors import MissingInputError
from tubeproxy.services.yt_dlp_service import VideoReference, YtDlpService

logger = get_logger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"description": "Missing or invalid input", "model": ErrorResponse},
    500: {"description": "yt-dlp missing or failed", "model": ErrorResponse},
}


def download_url_for(filename: str) -> str:
    """Relative URL under which the static mount serves *filename*."""
    return f"{settings.DOWNLOADS_URL_PREFIX}/{quote(filename)}"


def validate_download_request(request: DownloadRequest) -> tuple[VideoReference, str]:
    """Check a download request before any process is started.

    Returns:
        The resolved video reference and the quality token

    Raises:
        MissingInputError: If url or quality is missing
        InvalidUrlError: If the url holds no video id
        InvalidQualityError: If the quality is not a known tier
    """
    if not request.url or not request.quality:
        raise MissingInputError("Video URL and quality are required")

    reference = YtDlpService.resolve_reference(request.url)
    YtDlpService.parse_quality(request.quality)
    return reference, request.quality


@router.post(
    "/video-info",
    response_model=VideoInfo,
    status_code=status.HTTP_200_OK,
    summary="Fetch video information",
    description="Retrieve metadata and the available MP4 qualities for a video URL",
    responses=_ERROR_RESPONSES,
)
async def fetch_video_info(request: VideoInfoRequest) -> VideoInfo:
    """Fetch metadata and ranked qualities for a video URL.

    Raises:
        Various VideoDownloaderError exceptions (handled by global handler)
    """
    if not request.url:
        raise MissingInputError("Video URL is required")

    reference = YtDlpService.resolve_reference(request.url)

    # Run blocking yt-dlp calls in a thread to avoid blocking the event loop
    await asyncio.to_thread(YtDlpService.ensure_available)
    return await asyncio.to_thread(YtDlpService.fetch_video_info, reference)


@router.post(
    "/download",
    response_model=DownloadResponse,
    status_code=status.HTTP_200_OK,
    summary="Download video",
    description=(
        "Download a video at the requested quality into the downloads "
        "directory and return the URL it is served under"
    ),
    responses=_ERROR_RESPONSES,
)
async def download_video(request: DownloadRequest) -> DownloadResponse:
    """Download a video and wait for the file.

    The download is tracked as a job as well, so its state can be polled
    while this request is still waiting.
    """
    reference, quality = validate_download_request(request)
    await asyncio.to_thread(YtDlpService.ensure_available)

    job = download_jobs.create_job(reference.video_id, reference.url, quality)
    logger.info(f"Download requested: {reference.video_id} at {quality} (job {job.job_id})")

    filename = await asyncio.to_thread(YtDlpService.download, job)

    return DownloadResponse(
        success=True,
        download_url=download_url_for(filename),
        filename=filename,
        message="Video downloaded successfully",
        job_id=job.job_id,
    )
