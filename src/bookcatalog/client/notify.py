"""Non-blocking user notifications (toasts)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

log = structlog.get_logger()


class Level(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: Level
    title: str
    description: str = ""


class Notifier:
    """Collect notifications and forward them to an optional UI sink."""

    def __init__(self, sink: Callable[[Notification], None] | None = None) -> None:
        self.sink = sink
        self.history: list[Notification] = []

    def notify(self, level: Level, title: str, description: str = "") -> Notification:
        note = Notification(level=level, title=title, description=description)
        self.history.append(note)
        log.debug("notification", level=level.value, title=title, description=description)
        if self.sink:
            self.sink(note)
        return note

    def success(self, title: str, description: str = "") -> Notification:
        return self.notify(Level.SUCCESS, title, description)

    def info(self, title: str, description: str = "") -> Notification:
        return self.notify(Level.INFO, title, description)

    def warning(self, title: str, description: str = "") -> Notification:
        return self.notify(Level.WARNING, title, description)

    def error(self, title: str, description: str = "") -> Notification:
        return self.notify(Level.ERROR, title, description)
