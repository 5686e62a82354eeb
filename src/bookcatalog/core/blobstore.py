"""Public-read object storage for uploaded cover images."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx
import structlog

from .errors import TransientIOError

log = structlog.get_logger()

DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"
LOCAL_MOUNT_PATH = "/blobs"


@runtime_checkable
class BlobStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` with public read access and return its URL."""
        ...


class LocalBlobStore:
    """Write blobs to a directory that the web app serves under /blobs."""

    def __init__(self, root: Path | None = None, base_url: str | None = None) -> None:
        if root is None:
            root = Path(os.environ.get("BLOB_DIR", ".blobs"))
        if base_url is None:
            base_url = os.environ.get("PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL)
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    @staticmethod
    def _write(dest: Path, data: bytes) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        dest = self.root / key
        await asyncio.to_thread(self._write, dest, data)
        log.debug("blob_written", key=key, bytes=len(data), content_type=content_type)
        return f"{self.base_url}{LOCAL_MOUNT_PATH}/{key}"


class HttpBlobStore:
    """Upload blobs to a hosted object store with a PUT-by-pathname API.

    The store answers with JSON containing the public ``url`` of the object.
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": content_type,
            "X-Access": "public",
        }
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.put(
                    f"{self.endpoint}/{key}",
                    content=data,
                    headers=headers,
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                body = resp.json()
            url = body.get("url") if isinstance(body, dict) else None
        except (httpx.HTTPError, ValueError) as e:
            log.warning("blob_put_failed", key=key, error=str(e))
            raise TransientIOError(f"Blob store request failed: {e}") from e
        if not url:
            raise TransientIOError("Blob store response did not include a url")
        log.debug("blob_uploaded", key=key, url=url)
        return url


def blob_store_from_env() -> BlobStore:
    backend = os.environ.get("BLOB_BACKEND", "local")
    if backend == "http":
        return HttpBlobStore(
            endpoint=os.environ["BLOB_ENDPOINT"],
            token=os.environ.get("BLOB_TOKEN", ""),
        )
    if backend != "local":
        raise ValueError(f"Unknown BLOB_BACKEND: {backend}")
    return LocalBlobStore()
