"""Domain-specific exceptions for the services layer."""


class VideoDownloaderError(Exception):
    """Base exception for proxy errors."""

    def __init__(self, message: str, code: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message returned to the client
            code: Stable error code, used for status mapping and logs
        """
        self.message = message
        self.code = code
        super().__init__(message)


class MissingInputError(VideoDownloaderError):
    """Raised when a required request field is missing or empty."""

    def __init__(self, message: str = "Required fields are missing") -> None:
        super().__init__(message, "MISSING_INPUT")


class InvalidUrlError(VideoDownloaderError):
    """Raised when the provided URL is not a recognizable video URL."""

    def __init__(self, message: str = "Invalid YouTube URL") -> None:
        super().__init__(message, "INVALID_URL")


class InvalidQualityError(VideoDownloaderError):
    """Raised when the requested quality is not one of the known tiers."""

    def __init__(self, message: str = "Unsupported quality") -> None:
        super().__init__(message, "INVALID_QUALITY")


class JobNotFoundError(VideoDownloaderError):
    """Raised when a download job id is unknown or has expired."""

    def __init__(self, message: str = "Download job not found") -> None:
        super().__init__(message, "JOB_NOT_FOUND")


class ExtractorUnavailableError(VideoDownloaderError):
    """Raised when the yt-dlp binary cannot be executed."""

    def __init__(self, message: str = "yt-dlp is not installed on the server") -> None:
        super().__init__(message, "EXTRACTOR_UNAVAILABLE")


class YtdlpFailedError(VideoDownloaderError):
    """Raised when yt-dlp execution fails."""

    def __init__(
        self, message: str = "Video processing failed", code: str = "YTDLP_FAILED"
    ) -> None:
        super().__init__(message, code)


class YtdlpTimeoutError(YtdlpFailedError):
    """Raised when yt-dlp does not finish within its time limit."""

    def __init__(self, message: str = "Video processing timed out") -> None:
        super().__init__(message, "YTDLP_TIMEOUT")


class OutputParseError(VideoDownloaderError):
    """Raised when yt-dlp output cannot be parsed."""

    def __init__(self, message: str = "Failed to parse video information") -> None:
        super().__init__(message, "PARSE_FAILED")


class DownloadedFileNotFoundError(VideoDownloaderError):
    """Raised when a finished download left no file behind."""

    def __init__(self, message: str = "Downloaded file was not found") -> None:
        super().__init__(message, "FILE_NOT_FOUND")


class StorageAccessError(VideoDownloaderError):
    """Raised when the downloads directory cannot be read or modified."""

    def __init__(self, message: str = "Error accessing downloaded files") -> None:
        super().__init__(message, "STORAGE_ERROR")
