"""Pydantic models for video-related API contracts."""
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class VideoInfoRequest(BaseModel):
    """Request model for fetching video information.

    ``url`` is optional at the schema level so that a missing value is
    reported with the service's own 400 message instead of a schema error.
    """

    url: str | None = Field(
        default=None,
        description="URL of the video to inspect",
        max_length=2048,
        examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )

    @field_validator("url")
    @classmethod
    def strip_url(cls, v: str | None) -> str | None:
        """Strip whitespace; an empty string counts as missing."""
        if v is None:
            return None
        return v.strip() or None


class DownloadRequest(BaseModel):
    """Request model for downloading a video at a given quality."""

    url: str | None = Field(
        default=None,
        description="URL of the video to download",
        max_length=2048,
    )
    quality: str | None = Field(
        default=None,
        description="Quality token from the qualities list (e.g. '720p')",
        max_length=16,
        examples=["720p", "1080p"],
    )

    @field_validator("url", "quality")
    @classmethod
    def strip_field(cls, v: str | None) -> str | None:
        """Strip whitespace; an empty string counts as missing."""
        if v is None:
            return None
        return v.strip() or None


class FormatEntry(BaseModel):
    """One row of the ``formats`` list reported by yt-dlp."""

    format_id: str
    ext: str | None = None
    vcodec: str | None = None
    height: int | None = None
    filesize: float | None = None
    filesize_approx: float | None = None

    class Config:
        """Pydantic config."""
        extra = "ignore"
        coerce_numbers_to_str = True

    @property
    def approximate_size(self) -> float | None:
        """Exact size when known, otherwise yt-dlp's estimate."""
        return self.filesize or self.filesize_approx


class QualityOption(BaseModel):
    """A deduplicated, labeled resolution choice."""

    quality: str = Field(..., description="Quality token, e.g. '720p'")
    label: str = Field(..., description="Human-readable label")
    size: str = Field(..., description="Approximate size, e.g. '~42 MB'")
    format_id: str = Field(..., alias="formatId", description="yt-dlp format id")
    priority: int = Field(..., ge=1, le=8, description="1 is the lowest quality")

    class Config:
        """Pydantic config."""
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "quality": "720p",
                "label": "HD (720p)",
                "size": "~42 MB",
                "formatId": "22",
                "priority": 5,
            }
        }


class VideoInfo(BaseModel):
    """Video metadata and the ranked list of downloadable qualities."""

    video_id: str = Field(..., alias="videoId")
    title: str | None = None
    thumbnail: str | None = None
    duration: int | None = Field(default=None, ge=0)
    uploader: str | None = None
    view_count: int | None = Field(default=None, ge=0)
    qualities: list[QualityOption] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "videoId": "dQw4w9WgXcQ",
                "title": "Example Video Title",
                "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
                "duration": 213,
                "uploader": "Example Channel",
                "view_count": 1000,
                "qualities": [
                    {
                        "quality": "720p",
                        "label": "HD (720p)",
                        "size": "~42 MB",
                        "formatId": "22",
                        "priority": 5,
                    }
                ],
            }
        }


class DownloadResponse(BaseModel):
    """Result of a completed download."""

    success: bool = True
    download_url: str = Field(..., alias="downloadUrl")
    filename: str
    message: str
    job_id: str = Field(..., alias="jobId")

    class Config:
        """Pydantic config."""
        populate_by_name = True


JobStatusLiteral = Literal["queued", "running", "succeeded", "failed", "timed_out"]


class JobResponse(BaseModel):
    """Snapshot of a download job."""

    job_id: str = Field(..., alias="jobId")
    status: JobStatusLiteral
    video_id: str = Field(..., alias="videoId")
    quality: str
    progress: float = Field(default=0.0, ge=0, le=100)
    filename: str | None = None
    download_url: str | None = Field(default=None, alias="downloadUrl")
    error: str | None = None
    created_at: float = Field(..., alias="createdAt")
    updated_at: float = Field(..., alias="updatedAt")

    class Config:
        """Pydantic config."""
        populate_by_name = True


class StatusResponse(BaseModel):
    """Service readiness report."""

    status: Literal["running"] = "running"
    yt_dlp: Literal["available", "unavailable"] = Field(..., alias="ytDlp")
    message: str
    version: str | None = Field(default=None, description="Probed yt-dlp version")

    class Config:
        """Pydantic config."""
        populate_by_name = True


class CleanupResponse(BaseModel):
    """Result of a retention sweep."""

    success: bool = True
    deleted_files: int = Field(..., alias="deletedFiles", ge=0)
    message: str

    class Config:
        """Pydantic config."""
        populate_by_name = True


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(
        ...,
        description="Human-readable error message",
        min_length=1,
    )

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "error": "Invalid YouTube URL",
            }
        }


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(
        default="healthy",
        description="Health status of the service",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
