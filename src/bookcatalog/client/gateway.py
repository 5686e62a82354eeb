"""HTTP client for the cover upload endpoint."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx
import structlog

from ..core.errors import InternalError, TransientIOError, UploadTimeout, validation_error
from ..core.uploads import LocalFile

log = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0


@runtime_checkable
class UploadGateway(Protocol):
    async def upload(self, file: LocalFile) -> str:
        """Upload ``file`` and return its durable public URL."""
        ...


class GatewayClient:
    """Post a file to ``/api/upload`` and translate failures into catalog errors.

    400 responses become the matching ValidationError, 5xx and network
    failures become TransientIOError, and a request that exceeds ``timeout``
    raises UploadTimeout.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def upload(self, file: LocalFile) -> str:
        files = {"file": (file.name, file.data, file.content_type)}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, transport=self._transport) as client:
                resp = await client.post("/api/upload", files=files, timeout=self.timeout)
        except httpx.TimeoutException as e:
            log.warning("upload_timeout", filename=file.name, timeout=self.timeout)
            raise UploadTimeout(self.timeout) from e
        except httpx.HTTPError as e:
            log.warning("upload_request_failed", filename=file.name, error=str(e))
            raise TransientIOError(f"Upload request failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code == 200 and body.get("url"):
            return body["url"]

        message = body.get("error") or "Upload failed"
        log.info("upload_not_accepted", filename=file.name, status=resp.status_code, error=message)
        if resp.status_code in (400, 413):
            raise validation_error(body.get("reason", ""), message)
        if resp.status_code == 200:
            raise InternalError("Upload response did not include a url")
        raise TransientIOError(message)
