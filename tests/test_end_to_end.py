"""Add-book workflow against the real web app over an in-process transport."""

import httpx
import pytest

from bookcatalog.client.gateway import GatewayClient
from bookcatalog.client.orchestrator import SessionState, UploadOrchestrator
from bookcatalog.client.reconciler import RealtimeReconciler
from bookcatalog.client.remote import RemoteCatalogStore
from bookcatalog.core.models import BookRecord

MiB = 1024 * 1024

DUNE = BookRecord(
    id="dune",
    title="Dune",
    author="Frank Herbert",
    genre="Science Fiction",
    published_year=1965,
    cover_image="/placeholder.svg?height=120&width=80&text=Dune",
)


@pytest.fixture
def asgi_gateway(web) -> GatewayClient:
    return GatewayClient("http://testserver", transport=httpx.ASGITransport(app=web.app))


@pytest.mark.asyncio
async def test_dune_with_uploaded_cover(web, asgi_gateway, blobs, memory_store, view, notifier, make_file):
    orchestrator = UploadOrchestrator(asgi_gateway, view, notifier, store=memory_store)

    async with RealtimeReconciler(memory_store, view, notifier):
        draft = orchestrator.open_draft()
        session = await orchestrator.select_file(make_file("dune cover.jpg", "image/jpeg", 2 * MiB))
        assert session.state is SessionState.SUCCEEDED

        orchestrator.set_fields(
            title="Dune", author="Frank Herbert", genre="Science Fiction", published_year="1965"
        )
        preview = draft.preview_url
        record = await orchestrator.submit()

    key = blobs.puts[0][0]
    assert key.startswith("book-covers/") and key.endswith("-dune_cover.jpg")
    assert record.cover_image == f"https://blobs.example/{key}"
    assert record.cover_image != preview
    assert [b.title for b in view.books] == ["Dune"]
    assert [n.title for n in notifier.history] == ["Image Uploaded", "New book added: Dune", "Success!"]


@pytest.mark.asyncio
async def test_png_over_limit_never_reaches_server(web, asgi_gateway, blobs, view, notifier, make_file):
    orchestrator = UploadOrchestrator(asgi_gateway, view, notifier)
    orchestrator.open_draft()

    session = await orchestrator.select_file(make_file("scan.png", "image/png", 6 * MiB))

    assert session.state is SessionState.IDLE
    assert blobs.puts == []
    assert web._rate_log == {}


@pytest.mark.asyncio
async def test_server_failure_marks_session_failed(
    monkeypatch, web, asgi_gateway, failing_blobs, view, notifier, make_file
):
    monkeypatch.setattr(web, "blob_store", failing_blobs)
    orchestrator = UploadOrchestrator(asgi_gateway, view, notifier)
    draft = orchestrator.open_draft()

    session = await orchestrator.select_file(make_file())

    assert session.state is SessionState.FAILED
    assert draft.durable_url is None
    assert notifier.history[-1].description == "Upload failed"


@pytest.mark.asyncio
async def test_remote_store_round_trip(web, memory_store):
    store = RemoteCatalogStore("http://testserver", transport=httpx.ASGITransport(app=web.app))
    try:
        created = await store.insert(DUNE)
        assert await store.query_all() == [created]
        updated = await store.update(created.id, title="Dune Messiah", published_year=1969)
        assert updated.title == "Dune Messiah"
        assert (await memory_store.query_all())[0].published_year == 1969
        await store.delete(created.id)
        assert await store.query_all() == []
    finally:
        await store.aclose()

