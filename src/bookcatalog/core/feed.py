"""In-process change feed: topic subscriptions and event fan-out."""

from __future__ import annotations

import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from .models import ChangeEvent

log = structlog.get_logger()

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
ConnectHandler = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    topic: str
    id: int


class ChangeFeed:
    def __init__(self) -> None:
        self._handlers: dict[str, dict[int, ChangeHandler]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, topic: str, handler: ChangeHandler) -> Subscription:
        sub = Subscription(topic=topic, id=next(self._ids))
        self._handlers.setdefault(topic, {})[sub.id] = handler
        log.debug("feed_subscribed", topic=topic, subscription=sub.id)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.topic, {})
        if handlers.pop(subscription.id, None) is not None:
            log.debug("feed_unsubscribed", topic=subscription.topic, subscription=subscription.id)

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, {}))

    async def publish(self, topic: str, event: ChangeEvent) -> None:
        """Deliver ``event`` to every handler on ``topic``.

        A handler that raises is logged and skipped; the remaining handlers
        still receive the event.
        """
        for sub_id, handler in list(self._handlers.get(topic, {}).items()):
            try:
                await handler(event)
            except Exception:
                log.exception(
                    "feed_handler_failed",
                    topic=topic,
                    subscription=sub_id,
                    event_type=event.event_type.value,
                )
