"""Catalog store backed by a running bookcatalog server."""

from __future__ import annotations

import asyncio
import itertools
import json

import httpx
import structlog
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from ..core.errors import BookNotFound, DuplicateBook, TransientIOError, validation_error
from ..core.feed import ChangeHandler, ConnectHandler, Subscription
from ..core.models import BookRecord, ChangeEvent

log = structlog.get_logger()


class RemoteCatalogStore:
    """Query and mutate books over HTTP; follow the change feed over WebSocket.

    A dropped feed connection is logged and retried after ``reconnect_delay``
    seconds until the subscription is released.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        reconnect_delay: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.reconnect_delay = reconnect_delay
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)
        self._tasks: dict[Subscription, asyncio.Task] = {}
        self._ids = itertools.count(1)

    async def _request(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.warning("catalog_request_failed", method=method, url=url, error=str(e))
            raise TransientIOError(f"Catalog request failed: {e}") from e

        if resp.is_success:
            return resp
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("error") or resp.reason_phrase
        if resp.status_code == 400:
            raise validation_error(body.get("reason", ""), message)
        if resp.status_code == 404:
            raise BookNotFound(url.rsplit("/", 1)[-1])
        if resp.status_code == 409:
            raise DuplicateBook(url.rsplit("/", 1)[-1])
        raise TransientIOError(f"Catalog request failed with {resp.status_code}: {message}")

    async def query_all(self) -> list[BookRecord]:
        resp = await self._request("GET", "/api/books")
        return [BookRecord.from_dict(d) for d in resp.json()]

    async def insert(self, record: BookRecord) -> BookRecord:
        try:
            resp = await self._request("POST", "/api/books", json=record.to_dict())
        except DuplicateBook:
            raise DuplicateBook(record.id) from None
        return BookRecord.from_dict(resp.json())

    async def update(self, book_id: str, **fields: object) -> BookRecord:
        resp = await self._request("PATCH", f"/api/books/{book_id}", json=fields)
        return BookRecord.from_dict(resp.json())

    async def delete(self, book_id: str) -> BookRecord:
        resp = await self._request("DELETE", f"/api/books/{book_id}")
        return BookRecord.from_dict(resp.json())

    def feed_url(self, topic: str) -> str:
        base = self.base_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/api/{topic}/feed"

    def subscribe(
        self, topic: str, handler: ChangeHandler, on_connect: ConnectHandler | None = None
    ) -> Subscription:
        sub = Subscription(topic=topic, id=next(self._ids))
        listener = self._listen(topic, handler, on_connect)
        self._tasks[sub] = asyncio.get_running_loop().create_task(listener)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        task = self._tasks.pop(subscription, None)
        if task is not None:
            task.cancel()
            log.debug("feed_unsubscribed", topic=subscription.topic, subscription=subscription.id)

    async def _listen(
        self, topic: str, handler: ChangeHandler, on_connect: ConnectHandler | None
    ) -> None:
        url = self.feed_url(topic)
        while True:
            try:
                async with connect(url) as ws:
                    log.info("feed_connected", url=url)
                    if on_connect is not None:
                        await self._notify_connected(url, on_connect)
                    async for message in ws:
                        await self._deliver(topic, message, handler)
                log.info("feed_closed", url=url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                log.warning("feed_connection_lost", url=url, error=str(e))
            await asyncio.sleep(self.reconnect_delay)

    async def _notify_connected(self, url: str, on_connect: ConnectHandler) -> None:
        try:
            await on_connect()
        except Exception:
            log.exception("feed_connect_handler_failed", url=url)

    async def _deliver(self, topic: str, message: str | bytes, handler: ChangeHandler) -> None:
        try:
            event = ChangeEvent.from_dict(json.loads(message))
        except (ValueError, KeyError, TypeError) as e:
            log.warning("feed_message_invalid", topic=topic, error=str(e))
            return
        try:
            await handler(event)
        except Exception:
            log.exception("feed_handler_failed", topic=topic, event_type=event.event_type.value)

    async def aclose(self) -> None:
        for sub in list(self._tasks):
            self.unsubscribe(sub)
        await self._client.aclose()
