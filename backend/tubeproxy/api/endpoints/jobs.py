"""Download job endpoints: queue, poll and stream job state."""
import asyncio
from typing import Any, AsyncIterator

from fastapi import APIRouter, BackgroundTasks, status
from sse_starlette.sse import EventSourceResponse

from tubeproxy.api.endpoints.videos import download_url_for, validate_download_request
from tubeproxy.core.config import settings
from tubeproxy.core.logging import get_logger
from tubeproxy.models.video import DownloadRequest, ErrorResponse, JobResponse
from tubeproxy.services import download_jobs
from tubeproxy.services.download_jobs import DownloadJob
from tubeproxy.services.errors import JobNotFoundError
from tubeproxy.services.yt_dlp_service import YtDlpService

logger = get_logger(__name__)

router = APIRouter()


def job_to_response(job: DownloadJob) -> JobResponse:
    """Snapshot a job into its API representation."""
    return JobResponse(
        job_id=job.job_id,
        status=job.status.value,
        video_id=job.video_id,
        quality=job.quality,
        progress=round(job.progress, 1),
        filename=job.filename,
        download_url=download_url_for(job.filename) if job.filename else None,
        error=job.error,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def _get_job_or_raise(job_id: str) -> DownloadJob:
    job = download_jobs.get_job(job_id)
    if job is None:
        raise JobNotFoundError()
    return job


async def job_event_stream(
    job: DownloadJob, interval: float,
) -> AsyncIterator[dict[str, Any]]:
    """Yield a ``job`` event whenever the snapshot changes.

    The stream ends after the first snapshot in a terminal state.
    """
    last_payload = None
    while True:
        finished = job.is_finished
        payload = job_to_response(job).model_dump_json(by_alias=True)
        if payload != last_payload:
            yield {"event": "job", "data": payload}
            last_payload = payload
        if finished:
            return
        await asyncio.sleep(interval)


@router.post(
    "",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a download",
    description="Start a download in the background and return its job immediately",
    responses={
        400: {"description": "Missing or invalid input", "model": ErrorResponse},
        500: {"description": "yt-dlp missing", "model": ErrorResponse},
    },
)
async def create_download_job(
    request: DownloadRequest, background_tasks: BackgroundTasks,
) -> JobResponse:
    """Queue a download job; it runs after the response is sent."""
    reference, quality = validate_download_request(request)
    await asyncio.to_thread(YtDlpService.ensure_available)

    job = download_jobs.create_job(reference.video_id, reference.url, quality)
    # Sync callables run in Starlette's threadpool
    background_tasks.add_task(YtDlpService.run_job, job)

    logger.info(f"Queued job {job.job_id}: {reference.video_id} at {quality}")
    return job_to_response(job)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job state",
    responses={404: {"description": "Unknown or expired job", "model": ErrorResponse}},
)
async def get_download_job(job_id: str) -> JobResponse:
    """Return the current snapshot of a job."""
    return job_to_response(_get_job_or_raise(job_id))


@router.get(
    "/{job_id}/events",
    summary="Stream job state",
    description="Server-sent events with job snapshots until the job finishes",
    responses={404: {"description": "Unknown or expired job", "model": ErrorResponse}},
)
async def stream_download_job(job_id: str) -> EventSourceResponse:
    """Stream job snapshots as server-sent events."""
    job = _get_job_or_raise(job_id)
    return EventSourceResponse(
        job_event_stream(job, settings.JOB_EVENTS_INTERVAL_SECONDS)
    )
