"""yt-dlp integration service for video metadata extraction and downloads.

Everything here shells out to the ``yt-dlp`` executable with an argument
vector (never through a shell) and is blocking; the API layer runs these
calls in worker threads.
"""

import hashlib
import json
import math
import os
import re
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from tubeproxy.core.config import settings
from tubeproxy.core.logging import get_logger
from tubeproxy.models.video import FormatEntry, QualityOption, VideoInfo
from tubeproxy.services import storage
from tubeproxy.services.download_jobs import DownloadJob
from tubeproxy.services.errors import (
    DownloadedFileNotFoundError,
    ExtractorUnavailableError,
    InvalidQualityError,
    InvalidUrlError,
    OutputParseError,
    VideoDownloaderError,
    YtdlpFailedError,
    YtdlpTimeoutError,
)

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CODEC_NONE = "none"
CONTAINER_MP4 = "mp4"
SIZE_UNKNOWN = "Unknown"

# watch, embed, /v/, /e/, channel-style paths and youtu.be short links
VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)"
    r"([^\"&?/\s]{11})"
)

QUALITY_TOKEN_PATTERN = re.compile(r"^(\d+)p$")

# Explicit "scheme://" prefix; bare "host:port/..." input has none
URL_SCHEME_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://")

# height -> (label, priority); priority 1 is the lowest quality
QUALITY_TABLE: dict[int, tuple[str, int]] = {
    144: ("Lowest quality (144p)", 1),
    240: ("Low quality (240p)", 2),
    360: ("Standard quality (360p)", 3),
    480: ("Medium quality (480p)", 4),
    720: ("HD (720p)", 5),
    1080: ("Full HD (1080p)", 6),
    1440: ("2K (1440p)", 7),
    2160: ("4K (2160p)", 8),
}

# Progress lines printed with --newline, e.g. "[download]  42.3% of 10.00MiB"
_PROGRESS_PCT_RE = re.compile(r"\[download\]\s+([\d.]+)%")

_OUTPUT_TAIL_LINES = 20


@dataclass(frozen=True)
class VideoReference:
    """A submitted URL together with the video id extracted from it."""

    url: str
    video_id: str


class YtDlpService:
    """Service for interacting with the yt-dlp executable."""

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    @staticmethod
    def extract_video_id(url: str) -> str | None:
        """Return the 11-character video id contained in *url*, if any."""
        match = VIDEO_ID_PATTERN.search(url)
        return match.group(1) if match else None

    @classmethod
    def resolve_reference(cls, url: str) -> VideoReference:
        """Validate a user-supplied URL and extract its video id.

        Args:
            url: Raw URL string from user input

        Returns:
            VideoReference with the stripped URL and its video id

        Raises:
            InvalidUrlError: If no video id can be found or the URL is unsafe
                to hand to yt-dlp
        """
        url = url.strip()

        if url.startswith("-") or any(ch.isspace() or ord(ch) < 32 for ch in url):
            raise InvalidUrlError()

        # Only a leading scheme counts; "://" may also appear in a query
        match = URL_SCHEME_PATTERN.match(url)
        if match and match.group(1).lower() not in settings.allowed_schemes_list:
            raise InvalidUrlError(
                f"URL scheme not allowed. Allowed schemes: "
                f"{', '.join(settings.allowed_schemes_list)}"
            )

        video_id = cls.extract_video_id(url)
        if video_id is None:
            raise InvalidUrlError()

        return VideoReference(url=url, video_id=video_id)

    @staticmethod
    def parse_quality(quality: str) -> int:
        """Turn a quality token such as ``"720p"`` into its height.

        Raises:
            InvalidQualityError: If the token is not one of the known tiers
        """
        match = QUALITY_TOKEN_PATTERN.match(quality)
        if not match or int(match.group(1)) not in QUALITY_TABLE:
            allowed = ", ".join(f"{height}p" for height in QUALITY_TABLE)
            raise InvalidQualityError(f"Unsupported quality. Allowed values: {allowed}")
        return int(match.group(1))

    @staticmethod
    def _sanitize_url_for_logging(url: str) -> str:
        """Create a safe version of URL for logging (hide query params)."""
        try:
            parsed = urlparse(url)
            url_hash = hashlib.sha256(url.encode()).hexdigest()[:8]
            return f"{parsed.scheme}://{parsed.hostname}{parsed.path} (hash:{url_hash})"
        except ValueError:
            return "invalid-url"

    # ------------------------------------------------------------------
    # Availability probe
    # ------------------------------------------------------------------

    @classmethod
    def probe_version(cls) -> str | None:
        """Run ``yt-dlp --version``.

        Probed on every call; nothing is cached.

        Returns:
            The reported version string, or None when the binary is missing
            or exits with an error
        """
        try:
            result = subprocess.run(
                [settings.YTDLP_BINARY, "--version"],
                capture_output=True,
                text=True,
                timeout=settings.YTDLP_VERSION_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"yt-dlp probe failed: {e}")
            return None

        if result.returncode != 0:
            logger.warning(f"yt-dlp probe exited with status {result.returncode}")
            return None

        return result.stdout.strip() or "unknown"

    @classmethod
    def ensure_available(cls) -> str:
        """Return the yt-dlp version or raise if it cannot be run.

        Raises:
            ExtractorUnavailableError: If the probe fails
        """
        version = cls.probe_version()
        if version is None:
            raise ExtractorUnavailableError()
        return version

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------

    @staticmethod
    def _network_options() -> list[str]:
        """Options shared by every yt-dlp invocation."""
        options = ["--socket-timeout", str(settings.YTDLP_SOCKET_TIMEOUT)]

        if settings.YTDLP_USER_AGENT:
            options.extend(["--user-agent", settings.YTDLP_USER_AGENT])
        if settings.YTDLP_COOKIES_FROM_BROWSER:
            options.extend(["--cookies-from-browser", settings.YTDLP_COOKIES_FROM_BROWSER])
        if settings.YTDLP_PROXY:
            options.extend(["--proxy", settings.YTDLP_PROXY])

        return options

    @classmethod
    def build_info_command(cls, url: str) -> list[str]:
        """Build the metadata-only (``-j``) command for *url*."""
        return [
            settings.YTDLP_BINARY,
            "-j",
            "--no-playlist",
            "--no-warnings",
            *cls._network_options(),
            "--",
            url,
        ]

    @classmethod
    def build_download_command(
        cls, url: str, height: int, output_template: str,
    ) -> list[str]:
        """Build a command downloading the best MP4 at or below *height*."""
        return [
            settings.YTDLP_BINARY,
            "-f", f"best[height<={height}][ext={CONTAINER_MP4}]",
            "-o", output_template,
            "--no-playlist",
            "--no-warnings",
            "--newline",   # one line per progress update
            "--progress",  # force progress even when not a TTY
            *cls._network_options(),
            "--",
            url,
        ]

    # ------------------------------------------------------------------
    # Quality selection
    # ------------------------------------------------------------------

    @staticmethod
    def _format_size(size_bytes: float | None) -> str:
        """Render a byte count as ``~N MB`` (rounded half up)."""
        if not size_bytes:
            return SIZE_UNKNOWN
        return f"~{math.floor(size_bytes / 1024 / 1024 + 0.5)} MB"

    @classmethod
    def select_qualities(cls, raw_formats: list[Any]) -> list[QualityOption]:
        """Pick one MP4 video format per known height, best first.

        Entries without a video codec, in containers other than MP4, or at
        heights outside ``QUALITY_TABLE`` are dropped. The first entry seen
        for a height wins.
        """
        qualities: list[QualityOption] = []
        seen_heights: set[int] = set()

        for raw_fmt in raw_formats:
            if not isinstance(raw_fmt, dict):
                continue
            try:
                entry = FormatEntry.model_validate(raw_fmt)
            except ValidationError as e:
                logger.debug(f"Skipping malformed format: {e}")
                continue

            if not entry.vcodec or entry.vcodec == CODEC_NONE:
                continue
            if entry.ext != CONTAINER_MP4:
                continue
            if entry.height not in QUALITY_TABLE or entry.height in seen_heights:
                continue

            seen_heights.add(entry.height)
            label, priority = QUALITY_TABLE[entry.height]
            qualities.append(QualityOption(
                quality=f"{entry.height}p",
                label=label,
                size=cls._format_size(entry.approximate_size),
                format_id=entry.format_id,
                priority=priority,
            ))

        qualities.sort(key=lambda q: q.priority, reverse=True)
        return qualities

    # ------------------------------------------------------------------
    # Video info extraction
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_duration(duration_raw: Any) -> int | None:
        """Extract and validate duration in seconds."""
        if isinstance(duration_raw, (int, float)) and duration_raw >= 0:
            return int(duration_raw)
        return None

    @staticmethod
    def _extract_count(count_raw: Any) -> int | None:
        if isinstance(count_raw, int) and count_raw >= 0:
            return count_raw
        return None

    @classmethod
    def _parse_info_output(cls, stdout: str) -> dict[str, Any]:
        """Parse the single JSON line printed by ``yt-dlp -j``.

        Raises:
            OutputParseError: If the output is empty or not a JSON object
        """
        lines = [line for line in stdout.splitlines() if line.strip()]
        if not lines:
            raise OutputParseError()
        try:
            info = json.loads(lines[0])
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse yt-dlp output: {e}")
            raise OutputParseError()
        if not isinstance(info, dict):
            logger.error(f"Unexpected yt-dlp output type: {type(info).__name__}")
            raise OutputParseError()
        return info

    @classmethod
    def fetch_video_info(cls, reference: VideoReference) -> VideoInfo:
        """Fetch video metadata and the ranked list of qualities.

        Args:
            reference: Validated video reference

        Returns:
            VideoInfo with metadata and qualities

        Raises:
            ExtractorUnavailableError: If yt-dlp cannot be executed
            YtdlpTimeoutError: If yt-dlp exceeds the metadata time limit
            YtdlpFailedError: If yt-dlp exits with an error
            OutputParseError: If yt-dlp output is not valid JSON
        """
        safe_url = cls._sanitize_url_for_logging(reference.url)
        logger.info(f"Fetching video info for: {safe_url}")

        try:
            result = subprocess.run(
                cls.build_info_command(reference.url),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=settings.YTDLP_INFO_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            logger.error(
                f"yt-dlp metadata timed out after {settings.YTDLP_INFO_TIMEOUT}s "
                f"for {safe_url}"
            )
            raise YtdlpTimeoutError("Fetching video information timed out")
        except OSError as e:
            logger.error(f"Failed to start yt-dlp: {e}")
            raise ExtractorUnavailableError()

        if result.returncode != 0:
            logger.error(
                f"yt-dlp metadata failed ({result.returncode}) for {safe_url}: "
                f"{result.stderr[:500]}"
            )
            raise YtdlpFailedError("Failed to fetch video information")

        info = cls._parse_info_output(result.stdout)
        qualities = cls.select_qualities(info.get("formats") or [])

        logger.info(
            f"Found {len(qualities)} qualities for {reference.video_id} ({safe_url})"
        )
        return VideoInfo(
            video_id=info.get("id") or reference.video_id,
            title=info.get("title"),
            thumbnail=info.get("thumbnail"),
            duration=cls._extract_duration(info.get("duration")),
            uploader=info.get("uploader"),
            view_count=cls._extract_count(info.get("view_count")),
            qualities=qualities,
        )

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    @classmethod
    def download(cls, job: DownloadJob) -> str:
        """Run a queued job to completion and return the file name.

        The job is moved to ``running`` and ends in ``succeeded``, ``failed``
        or ``timed_out``; errors are re-raised after the job is updated.

        Raises:
            InvalidQualityError: If the job's quality is not a known tier
            ExtractorUnavailableError: If yt-dlp cannot be executed
            YtdlpTimeoutError: If the download exceeds its time limit
            YtdlpFailedError: If yt-dlp exits with an error
            DownloadedFileNotFoundError: If no output file is found
            StorageAccessError: If the downloads directory cannot be listed
        """
        job.mark_running()
        try:
            filename = cls._execute_download(job)
        except YtdlpTimeoutError as e:
            job.mark_timed_out(e.message)
            raise
        except VideoDownloaderError as e:
            job.mark_failed(e.message)
            raise
        except Exception:
            job.mark_failed("Unexpected error during download")
            raise

        job.mark_succeeded(filename)
        logger.info(f"Job {job.job_id} finished: {filename}")
        return filename

    @classmethod
    def _execute_download(cls, job: DownloadJob) -> str:
        height = cls.parse_quality(job.quality)
        directory = settings.DOWNLOADS_DIR
        output_template = os.path.join(directory, f"{job.file_stem}.%(ext)s")
        cmd = cls.build_download_command(job.url, height, output_template)
        safe_url = cls._sanitize_url_for_logging(job.url)

        logger.info(
            f"Starting download job {job.job_id}: {job.video_id} at {job.quality} "
            f"from {safe_url}"
        )

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            logger.error(f"Failed to start yt-dlp: {e}")
            raise ExtractorUnavailableError()

        output_tail: deque[str] = deque(maxlen=_OUTPUT_TAIL_LINES)

        def _read_output() -> None:
            """Background thread: record progress and keep the last lines."""
            if process.stdout is None:
                return
            # readline() avoids the read-ahead buffer of ``for line in ...``
            for line in iter(process.stdout.readline, ""):
                line = line.strip()
                if not line:
                    continue
                output_tail.append(line)
                pct_m = _PROGRESS_PCT_RE.search(line)
                if pct_m:
                    job.update_progress(float(pct_m.group(1)))

        reader = threading.Thread(target=_read_output, daemon=True)
        reader.start()

        try:
            return_code = process.wait(timeout=settings.YTDLP_DOWNLOAD_TIMEOUT)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            reader.join(timeout=5)
            logger.error(
                f"Download job {job.job_id} timed out after "
                f"{settings.YTDLP_DOWNLOAD_TIMEOUT}s"
            )
            raise YtdlpTimeoutError("Download timed out")

        reader.join(timeout=5)

        if return_code != 0:
            logger.error(
                f"Download job {job.job_id} failed ({return_code}) for {safe_url}: "
                f"{' | '.join(output_tail)}"
            )
            raise YtdlpFailedError("Failed to download video")

        filename = storage.find_job_file(directory, job.file_stem)
        if filename is None:
            logger.error(
                f"Download job {job.job_id} exited cleanly but no file matches "
                f"{job.file_stem}"
            )
            raise DownloadedFileNotFoundError()
        return filename

    @classmethod
    def run_job(cls, job: DownloadJob) -> None:
        """Background entry point: run *job*, leaving errors on the job."""
        try:
            cls.download(job)
        except VideoDownloaderError as e:
            logger.warning(
                f"Background job {job.job_id} ended as {job.status.value}: "
                f"{e.code} - {e.message}"
            )
