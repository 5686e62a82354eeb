"""Shared pytest fixtures for bookcatalog tests."""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

# The web app builds its blob store at import time; keep it out of the repo.
os.environ.setdefault("BLOB_DIR", tempfile.mkdtemp(prefix="bookcatalog-blobs-"))
os.environ.pop("CATALOG_DB", None)
os.environ.pop("BLOB_BACKEND", None)

from fastapi.testclient import TestClient  # noqa: E402

from bookcatalog.client.notify import Notifier  # noqa: E402
from bookcatalog.client.view import CatalogView  # noqa: E402
from bookcatalog.core.errors import TransientIOError  # noqa: E402
from bookcatalog.core.store import InMemoryCatalogStore, SqliteCatalogStore  # noqa: E402
from bookcatalog.core.uploads import LocalFile  # noqa: E402
from bookcatalog.web import app as app_module  # noqa: E402


def make_file(name: str = "cover.jpg", content_type: str = "image/jpeg", size: int = 1024) -> LocalFile:
    return LocalFile(name=name, content_type=content_type, data=b"\xff" * size)


class RecordingBlobStore:
    """Blob store that remembers every write."""

    def __init__(self, base_url: str = "https://blobs.example") -> None:
        self.base_url = base_url
        self.puts: list[tuple[str, bytes, str]] = []

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.puts.append((key, data, content_type))
        return f"{self.base_url}/{key}"


class FailingBlobStore:
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        raise TransientIOError("connection refused by blob-host.internal:443")


class FakeGateway:
    """Upload gateway whose calls can be held open and scripted per filename."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.started = asyncio.Event()
        self.holds: dict[str, asyncio.Event] = {}
        self.results: dict[str, object] = {}

    def hold(self, name: str) -> asyncio.Event:
        self.holds[name] = asyncio.Event()
        return self.holds[name]

    def url_for(self, name: str) -> str:
        return f"https://blobs.example/book-covers/1700000000000-{name}"

    async def upload(self, file: LocalFile) -> str:
        self.calls.append(file.name)
        self.started.set()
        if file.name in self.holds:
            await self.holds[file.name].wait()
        result = self.results.get(file.name, self.url_for(file.name))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def view() -> CatalogView:
    return CatalogView()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def memory_store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path: Path):
    if request.param == "memory":
        yield InMemoryCatalogStore()
    else:
        store = SqliteCatalogStore(tmp_path / "catalog.db")
        yield store
        store.close()


@pytest.fixture
def blobs() -> RecordingBlobStore:
    return RecordingBlobStore()


@pytest.fixture
def web(monkeypatch, blobs, memory_store):
    """The web app module wired to a recording blob store and an empty store."""
    monkeypatch.setattr(app_module, "blob_store", blobs)
    monkeypatch.setattr(app_module, "catalog_store", memory_store)
    app_module._rate_log.clear()
    yield app_module
    app_module._rate_log.clear()


@pytest.fixture
def client(web) -> TestClient:
    with TestClient(web.app) as test_client:
        yield test_client


@pytest.fixture(name="make_file")
def make_file_fixture():
    return make_file


@pytest.fixture
def failing_blobs() -> FailingBlobStore:
    return FailingBlobStore()
