"""Tests for the downloads directory helpers and the job store."""
import asyncio
import os
import time
from pathlib import Path

import pytest
from cachetools import TTLCache

from tubeproxy.api.endpoints.jobs import job_event_stream
from tubeproxy.services import download_jobs, storage
from tubeproxy.services.download_jobs import JobStatus
from tubeproxy.services.errors import StorageAccessError

HOUR = 3600


def _touch(path: Path, mtime: float) -> None:
    path.write_bytes(b"data")
    os.utime(path, (mtime, mtime))


class TestPurgeExpired:
    """Tests for the retention sweep."""

    def test_deletes_only_files_past_threshold(self, tmp_path: Path) -> None:
        now = time.time()
        fresh = tmp_path / "fresh.mp4"
        stale = tmp_path / "stale.mp4"
        _touch(fresh, now - 23 * HOUR)
        _touch(stale, now - 25 * HOUR)

        deleted = storage.purge_expired(str(tmp_path), 24 * HOUR, now=now)

        assert deleted == 1
        assert fresh.exists()
        assert not stale.exists()

    def test_ignores_directories(self, tmp_path: Path) -> None:
        now = time.time()
        subdir = tmp_path / "nested"
        subdir.mkdir()
        os.utime(subdir, (now - 48 * HOUR, now - 48 * HOUR))

        assert storage.purge_expired(str(tmp_path), 24 * HOUR, now=now) == 0
        assert subdir.exists()

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert storage.purge_expired(str(tmp_path), 24 * HOUR) == 0

    def test_missing_directory_aborts(self, tmp_path: Path) -> None:
        with pytest.raises(StorageAccessError):
            storage.purge_expired(str(tmp_path / "missing"), 24 * HOUR)


class TestFindJobFile:
    """Tests for locating a finished download by its stem."""

    def test_exact_stem_match(self, tmp_path: Path) -> None:
        (tmp_path / "abc_720p_1_job1.mp4").write_bytes(b"x")
        (tmp_path / "abc_720p_1_job2.mp4").write_bytes(b"x")

        assert storage.find_job_file(str(tmp_path), "abc_720p_1_job2") == "abc_720p_1_job2.mp4"

    def test_partial_files_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "abc_720p_1_job1.mp4.part").write_bytes(b"x")
        assert storage.find_job_file(str(tmp_path), "abc_720p_1_job1") is None

    def test_unreadable_directory(self, tmp_path: Path) -> None:
        with pytest.raises(StorageAccessError):
            storage.find_job_file(str(tmp_path / "missing"), "stem")

    def test_ensure_directory(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "downloads"
        storage.ensure_directory(str(target))
        assert target.is_dir()


class TestDownloadJob:
    """Tests for the job state machine and store."""

    def test_happy_path(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "https://youtu.be/dQw4w9WgXcQ", "720p")
        assert job.status is JobStatus.QUEUED
        assert not job.is_finished

        job.mark_running()
        job.update_progress(37.5)
        assert job.progress == 37.5

        job.mark_succeeded("file.mp4")
        assert job.status is JobStatus.SUCCEEDED
        assert job.filename == "file.mp4"
        assert job.progress == 100.0
        assert job.is_finished

    def test_queued_job_can_fail(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        job.mark_failed("boom")
        assert job.status is JobStatus.FAILED
        assert job.error == "boom"

    @pytest.mark.parametrize("terminal", ["succeeded", "failed", "timed_out"])
    def test_terminal_states_are_final(self, terminal: str) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        job.mark_running()
        if terminal == "succeeded":
            job.mark_succeeded("f.mp4")
        elif terminal == "failed":
            job.mark_failed("err")
        else:
            job.mark_timed_out("slow")

        with pytest.raises(ValueError):
            job.mark_running()
        with pytest.raises(ValueError):
            job.mark_failed("again")

    def test_cannot_succeed_without_running(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        with pytest.raises(ValueError):
            job.mark_succeeded("f.mp4")

    def test_progress_ignored_unless_running(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        job.update_progress(50)
        assert job.progress == 0.0

    def test_file_stem_embeds_video_and_quality(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "1080p")
        assert job.file_stem.startswith("dQw4w9WgXcQ_1080p_")
        assert job.file_stem.endswith(f"_{job.job_id}")

    def test_store_lookup(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        assert download_jobs.get_job(job.job_id) is job
        assert download_jobs.get_job("unknown") is None

    def test_running_job_survives_store_overflow(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Size limits only evict finished jobs."""
        monkeypatch.setattr(download_jobs, "_finished", TTLCache(maxsize=2, ttl=60))
        running = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        running.mark_running()

        finished = []
        for _ in range(3):
            job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
            job.mark_failed("boom")
            finished.append(job)
            download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")

        assert download_jobs.get_job(running.job_id) is running
        assert download_jobs.get_job(finished[0].job_id) is None
        assert download_jobs.get_job(finished[-1].job_id) is finished[-1]


class TestJobEventStream:
    """Tests for the server-sent job event generator."""

    @staticmethod
    def _collect(job: download_jobs.DownloadJob, on_first=None) -> list[dict]:
        async def _run() -> list[dict]:
            events = []
            async for event in job_event_stream(job, interval=0):
                events.append(event)
                if on_first is not None and len(events) == 1:
                    on_first()
            return events

        return asyncio.run(_run())

    def test_finished_job_emits_once(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        job.mark_failed("boom")

        events = self._collect(job)

        assert len(events) == 1
        assert events[0]["event"] == "job"
        assert '"status":"failed"' in events[0]["data"]

    def test_stream_ends_after_terminal_state(self) -> None:
        job = download_jobs.create_job("dQw4w9WgXcQ", "u", "720p")
        job.mark_running()

        events = self._collect(job, on_first=lambda: job.mark_succeeded("f.mp4"))

        assert len(events) == 2
        assert '"status":"running"' in events[0]["data"]
        assert '"status":"succeeded"' in events[1]["data"]
        assert '"downloadUrl":"/downloads/f.mp4"' in events[1]["data"]
