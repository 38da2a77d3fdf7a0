"""Filesystem helpers for the shared downloads directory."""

import os
import time

from tubeproxy.core.logging import get_logger
from tubeproxy.services.errors import StorageAccessError

logger = get_logger(__name__)

# Leftovers yt-dlp writes while a download is in flight
PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")


def ensure_directory(directory: str) -> None:
    """Create the downloads directory if it does not exist yet."""
    if not os.path.isdir(directory):
        os.makedirs(directory, exist_ok=True)
        logger.info(f"Created downloads directory: {directory}")


def find_job_file(directory: str, stem: str) -> str | None:
    """Return the name of the finished file whose name is ``<stem>.<ext>``.

    Raises:
        StorageAccessError: If the directory cannot be listed
    """
    prefix = f"{stem}."
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.error(f"Failed to list downloads directory {directory}: {e}")
        raise StorageAccessError()

    for name in names:
        if name.startswith(prefix) and not name.endswith(PARTIAL_SUFFIXES):
            return name
    return None


def purge_expired(
    directory: str,
    max_age_seconds: float,
    now: float | None = None,
) -> int:
    """Delete regular files whose mtime is older than *max_age_seconds*.

    A single filesystem error aborts the sweep; files removed before the
    error stay removed.

    Args:
        directory: Directory to sweep (not recursive)
        max_age_seconds: Age threshold relative to *now*
        now: Reference time as a UNIX timestamp, defaults to the current time

    Returns:
        Number of deleted files

    Raises:
        StorageAccessError: If listing, stat or unlink fails
    """
    if now is None:
        now = time.time()

    deleted = 0
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                if not entry.is_file(follow_symlinks=False):
                    continue
                if now - entry.stat(follow_symlinks=False).st_mtime > max_age_seconds:
                    os.unlink(entry.path)
                    deleted += 1
                    logger.debug(f"Deleted expired download: {entry.name}")
    except OSError as e:
        logger.error(f"Cleanup of {directory} failed after {deleted} deletions: {e}")
        raise StorageAccessError("Error cleaning up files")

    logger.info(f"Cleanup removed {deleted} file(s) from {directory}")
    return deleted
