"""Shared fixtures."""
import asyncio
from pathlib import Path

import pytest
import pytest_asyncio

from gphotos_uploader.models import UploadResult
from gphotos_uploader.services.status_store import StatusStore


@pytest_asyncio.fixture
async def store(tmp_path):
    """A status store backed by a temporary database file."""
    async with StatusStore(tmp_path / "db.sqlite3") as status_store:
        yield status_store


class FakeUploadOperation:
    """Upload operation double with an in-flight counter."""

    def __init__(self, delay: float = 0.0, fail: set = None):
        self.delay = delay
        self.fail = fail or set()
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, path, album, credentials):
        self.calls.append(str(path))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if Path(path).name in self.fail:
                return UploadResult.fail(path, "remote rejected the file")
            return UploadResult.ok(path, upload_token=f"token-{Path(path).name}")
        finally:
            self.in_flight -= 1


@pytest.fixture
def upload_operation():
    return FakeUploadOperation()


@pytest.fixture
def make_photo(tmp_path):
    def _make(name: str = "photo.jpg", content: bytes = b"\xff\xd8\xff fake jpeg") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path
    return _make
