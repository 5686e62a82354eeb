"""FastAPI web application for the book catalog."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile

from ..core.blobstore import LOCAL_MOUNT_PATH, LocalBlobStore, blob_store_from_env
from ..core.catalog import filter_books
from ..core.errors import BookNotFound, DuplicateBook, MissingFile, TooLarge, ValidationError
from ..core.models import (
    SAMPLE_BOOKS,
    BookRecord,
    ChangeEvent,
    new_book_id,
    placeholder_cover,
    validate_book_fields,
)
from ..core.store import BOOKS_TOPIC, CatalogStore, InMemoryCatalogStore, SqliteCatalogStore
from ..core.uploads import MAX_UPLOAD_BYTES, storage_key, validate_image

load_dotenv()

log = structlog.get_logger()

# Cover limit plus room for multipart framing and the other form fields
MAX_BODY_BYTES = MAX_UPLOAD_BYTES + 64 * 1024

# Rate limiting: per-IP, requests to /api/upload
RATE_LIMIT = int(os.environ.get("RATE_LIMIT", "10"))  # uploads per window
RATE_LIMIT_WINDOW = int(os.environ.get("RATE_LIMIT_WINDOW", "60"))  # seconds

# Rate limit tracking: IP -> list of timestamps
_rate_log: dict[str, list[float]] = defaultdict(list)


def _store_from_env() -> CatalogStore:
    db = os.environ.get("CATALOG_DB", "")
    if db:
        return SqliteCatalogStore(Path(db))
    return InMemoryCatalogStore(seed=SAMPLE_BOOKS)


catalog_store: CatalogStore = _store_from_env()
blob_store = blob_store_from_env()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _is_rate_limited(ip: str) -> bool:
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW
    # Trim old entries
    _rate_log[ip] = [t for t in _rate_log[ip] if t > window_start]
    return len(_rate_log[ip]) >= RATE_LIMIT


def _record_request(ip: str) -> None:
    _rate_log[ip].append(time.time())


def _validation_response(e: ValidationError) -> JSONResponse:
    return JSONResponse({"error": e.message, "reason": e.reason}, status_code=400)


app = FastAPI(title="Book Catalog", docs_url=None, redoc_url=None)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


if isinstance(blob_store, LocalBlobStore):
    app.mount(LOCAL_MOUNT_PATH, StaticFiles(directory=str(blob_store.root)), name="blobs")


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "0.1.0",
        "environment": os.environ.get("ENV", "dev"),
        "store": type(catalog_store).__name__,
        "blob_store": type(blob_store).__name__,
    }


@app.post("/api/upload")
async def upload(request: Request):
    ip = _client_ip(request)
    if _is_rate_limited(ip):
        log.warning("rate_limited", ip=ip)
        return JSONResponse(
            {"error": "Too many uploads. Please wait a minute and try again."},
            status_code=429,
        )

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > MAX_BODY_BYTES:
        log.info("upload_rejected", ip=ip, content_length=int(content_length))
        e = TooLarge()
        return JSONResponse({"error": e.message, "reason": e.reason}, status_code=413)

    try:
        form = await request.form()
        file = form.get("file")
        if not isinstance(file, UploadFile):
            raise MissingFile()

        data = await file.read()
        try:
            validate_image(file.content_type, len(data))
        except ValidationError:
            log.info(
                "upload_rejected",
                filename=file.filename,
                content_type=file.content_type,
                size=len(data),
            )
            raise

        _record_request(ip)
        key = storage_key(file.filename or "upload")
        url = await blob_store.put(key, data, file.content_type)
    except ValidationError as e:
        return _validation_response(e)
    except Exception:
        log.exception("upload_failed", ip=ip)
        return JSONResponse({"error": "Upload failed"}, status_code=500)

    log.info("upload_stored", key=key, bytes=len(data), url=url)
    return {"url": url}


@app.get("/api/books")
async def list_books(q: str = ""):
    books = await catalog_store.query_all()
    return [b.to_dict() for b in filter_books(books, q)]


@app.post("/api/books", status_code=201)
async def add_book(request: Request):
    body = await request.json()
    try:
        fields = validate_book_fields(
            body.get("title"), body.get("author"), body.get("genre"), body.get("published_year")
        )
    except ValidationError as e:
        return _validation_response(e)

    record = BookRecord(
        id=str(body.get("id") or new_book_id()),
        cover_image=body.get("cover_image") or placeholder_cover(fields["title"]),
        **fields,
    )
    try:
        record = await catalog_store.insert(record)
    except DuplicateBook as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return record.to_dict()


@app.patch("/api/books/{book_id}")
async def update_book(book_id: str, request: Request):
    body = await request.json()
    current = next((b for b in await catalog_store.query_all() if b.id == book_id), None)
    if current is None:
        return JSONResponse({"error": f"Book not found: {book_id}"}, status_code=404)

    merged = {**current.to_dict(), **body}
    try:
        fields = validate_book_fields(
            merged.get("title"), merged.get("author"), merged.get("genre"), merged.get("published_year")
        )
    except ValidationError as e:
        return _validation_response(e)
    if "cover_image" in body:
        fields["cover_image"] = body["cover_image"] or placeholder_cover(fields["title"])

    try:
        record = await catalog_store.update(book_id, **fields)
    except BookNotFound as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    return record.to_dict()


@app.delete("/api/books/{book_id}")
async def delete_book(book_id: str):
    try:
        record = await catalog_store.delete(book_id)
    except BookNotFound as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    return record.to_dict()


@app.websocket("/api/books/feed")
async def books_feed(websocket: WebSocket):
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    async def forward(event: ChangeEvent) -> None:
        queue.put_nowait(event)

    async def pump() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event.to_dict())

    # Subscribe before accepting so no event published after the handshake is lost
    subscription = catalog_store.subscribe(BOOKS_TOPIC, forward)
    await websocket.accept()
    log.info("feed_client_connected", subscription=subscription.id)
    sender = asyncio.create_task(pump())
    try:
        # Clients never send; this only waits for the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        log.info("feed_client_disconnected", subscription=subscription.id)
    finally:
        sender.cancel()
        catalog_store.unsubscribe(subscription)


def configure_logging() -> None:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def main():
    configure_logging()
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "bookcatalog.web.app:app",
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
