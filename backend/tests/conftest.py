"""Test configuration and fixtures."""
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from tubeproxy.core.config import settings
from tubeproxy.main import create_app
from tubeproxy.services import download_jobs


@pytest.fixture
def downloads_dir(tmp_path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the downloads directory at a temporary path.

    Returns:
        Path of the temporary downloads directory
    """
    directory = tmp_path / "downloads"
    directory.mkdir()
    monkeypatch.setattr(settings, "DOWNLOADS_DIR", str(directory))
    return str(directory)


@pytest.fixture(autouse=True)
def clean_jobs() -> Generator[None, None, None]:
    """Start every test with an empty job store."""
    download_jobs.clear_jobs()
    yield
    download_jobs.clear_jobs()


@pytest.fixture
def client(downloads_dir: str) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app.

    Yields:
        TestClient instance
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
