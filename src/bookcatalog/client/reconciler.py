"""Keep the visible list in step with the catalog store's change feed."""

from __future__ import annotations

import structlog

from ..core.errors import CatalogError
from ..core.feed import Subscription
from ..core.models import ChangeEvent, EventType
from ..core.store import BOOKS_TOPIC, CatalogStore
from .notify import Notifier
from .view import CatalogView

log = structlog.get_logger()


class RealtimeReconciler:
    """Re-query the whole collection whenever a change event arrives.

    Events are never applied field by field; each one triggers a full
    re-query that replaces the view. Re-queries requested while one is in
    flight collapse into a single follow-up.
    """

    def __init__(
        self,
        store: CatalogStore,
        view: CatalogView,
        notifier: Notifier | None = None,
        topic: str = BOOKS_TOPIC,
    ) -> None:
        self.store = store
        self.view = view
        self.notifier = notifier or Notifier()
        self.topic = topic
        self._subscription: Subscription | None = None
        self._refreshing = False
        self._pending = False

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.store.subscribe(
                self.topic, self._on_change, on_connect=self._on_connect
            )
            log.info("reconciler_started", topic=self.topic)
        await self.refresh()

    def stop(self) -> None:
        if self._subscription is None:
            return
        self.store.unsubscribe(self._subscription)
        self._subscription = None
        log.info("reconciler_stopped", topic=self.topic)

    async def __aenter__(self) -> RealtimeReconciler:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()

    async def _on_change(self, event: ChangeEvent) -> None:
        if self._subscription is None:
            return
        self._announce(event)
        await self.refresh()

    async def _on_connect(self) -> None:
        # Changes made while the feed was down produced no events
        if self._subscription is None:
            return
        log.info("reconciler_resync", topic=self.topic)
        await self.refresh()

    def _announce(self, event: ChangeEvent) -> None:
        title = event.title
        if event.event_type is EventType.INSERT:
            self.notifier.success(f"New book added: {title}")
        elif event.event_type is EventType.UPDATE:
            self.notifier.info(f"Book updated: {title}")
        elif event.event_type is EventType.DELETE:
            self.notifier.warning(f"Book deleted: {title}")

    async def refresh(self) -> None:
        if self._refreshing:
            self._pending = True
            return
        self._refreshing = True
        try:
            while True:
                self._pending = False
                try:
                    books = await self.store.query_all()
                except CatalogError as e:
                    # Keep showing the last known list
                    log.warning("reconciler_refresh_failed", topic=self.topic, error=str(e))
                else:
                    self.view.replace(books)
                if not self._pending:
                    break
        finally:
            self._refreshing = False
