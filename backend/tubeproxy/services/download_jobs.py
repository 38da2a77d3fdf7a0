"""In-memory job store for tracking downloads.

Every download gets a ``DownloadJob`` whose id is also the key of the file
it produces, so the finished file is found by name rather than by guessing.
The job moves through an explicit state machine::

    queued -> running -> succeeded | failed | timed_out
    queued -> failed

The yt-dlp worker thread updates progress while the job is running; the
polling and SSE endpoints only read it.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from cachetools import TTLCache

from tubeproxy.core.config import settings
from tubeproxy.core.logging import get_logger

logger = get_logger(__name__)


class JobStatus(str, Enum):
    """Lifecycle states of a download job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMED_OUT}
    ),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.TIMED_OUT: frozenset(),
}


@dataclass
class DownloadJob:
    """Tracks the state and progress of a single download."""

    job_id: str
    video_id: str
    url: str
    quality: str
    status: JobStatus = JobStatus.QUEUED
    # 0-100 as reported by yt-dlp
    progress: float = 0.0
    filename: Optional[str] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def file_stem(self) -> str:
        """Output name without extension: ``{video}_{quality}_{ms}_{job}``."""
        return f"{self.video_id}_{self.quality}_{int(self.created_at * 1000)}_{self.job_id}"

    @property
    def is_finished(self) -> bool:
        """True once the job reached a terminal state."""
        return not _TRANSITIONS[self.status]

    def _transition(self, new_status: JobStatus) -> None:
        if new_status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid job transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status
        self.updated_at = time.time()

    def mark_running(self) -> None:
        self._transition(JobStatus.RUNNING)

    def update_progress(self, progress: float) -> None:
        """Record a progress percentage; ignored unless running."""
        if self.status is not JobStatus.RUNNING:
            return
        self.progress = max(self.progress, min(progress, 100.0))
        self.updated_at = time.time()

    def mark_succeeded(self, filename: str) -> None:
        self._transition(JobStatus.SUCCEEDED)
        self.filename = filename
        self.progress = 100.0

    def mark_failed(self, error: str) -> None:
        self._transition(JobStatus.FAILED)
        self.error = error

    def mark_timed_out(self, error: str) -> None:
        self._transition(JobStatus.TIMED_OUT)
        self.error = error


# ---------------------------------------------------------------------------
# Global store
# ---------------------------------------------------------------------------
# Unfinished jobs sit in a plain dict and are never evicted. Once a job is
# finished it moves to a TTLCache, where age and size limits apply.

_active: dict[str, DownloadJob] = {}
_finished: TTLCache | None = None
_lock = threading.Lock()


def _get_finished() -> TTLCache:
    """Lazy-initialise and return the cache of finished jobs."""
    global _finished
    if _finished is None:
        _finished = TTLCache(
            maxsize=settings.JOB_STORE_MAXSIZE,
            ttl=settings.JOB_TTL_SECONDS,
        )
    return _finished


def _retire_finished() -> None:
    """Move finished jobs out of the active set. Caller holds ``_lock``."""
    done = [job_id for job_id, job in _active.items() if job.is_finished]
    finished = _get_finished()
    for job_id in done:
        finished[job_id] = _active.pop(job_id)


def create_job(video_id: str, url: str, quality: str) -> DownloadJob:
    """Create and register a new queued job."""
    job = DownloadJob(
        job_id=uuid.uuid4().hex[:12],
        video_id=video_id,
        url=url,
        quality=quality,
    )
    with _lock:
        _retire_finished()
        _active[job.job_id] = job
    logger.debug(f"Created download job {job.job_id} for {video_id} at {quality}")
    return job


def get_job(job_id: str) -> Optional[DownloadJob]:
    """Get a job by ID (returns ``None`` if unknown or expired)."""
    with _lock:
        _retire_finished()
        job = _active.get(job_id)
        if job is None:
            job = _get_finished().get(job_id)
        return job


def clear_jobs() -> None:
    """Drop every job record."""
    with _lock:
        _active.clear()
        _get_finished().clear()
