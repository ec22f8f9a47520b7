from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .logger import get_logger

_log = get_logger(__name__)

DEFAULT_CAPACITY = 5
DEFAULT_DURATION_SECONDS = 3.2


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    id: str
    level: NotificationLevel
    title: str
    description: str | None
    duration_seconds: float
    created_at: float

    @property
    def expires_at(self) -> float | None:
        if self.duration_seconds <= 0:
            return None
        return self.created_at + self.duration_seconds


NotificationListener = Callable[[list[Notification]], None]


@dataclass
class NotificationChannel:
    """Bounded FIFO of operator notifications.

    Each notification expires on its own timer. When pushed from inside a
    running event loop the timer is a ``call_later`` handle; expiry is also
    applied lazily on read so the channel works without a loop.
    """

    capacity: int = DEFAULT_CAPACITY
    default_duration_seconds: float = DEFAULT_DURATION_SECONDS
    now: Callable[[], float] = time.monotonic
    _items: deque[Notification] = field(default_factory=deque, init=False, repr=False)
    _timers: dict[str, asyncio.TimerHandle] = field(default_factory=dict, init=False, repr=False)
    _listeners: list[NotificationListener] = field(default_factory=list, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("notification capacity must be >= 1")

    def push(
        self,
        level: NotificationLevel,
        title: str,
        description: str | None = None,
        duration_seconds: float | None = None,
    ) -> Notification | None:
        if self._closed:
            _log.debug("notification dropped after close: %s", title)
            return None
        duration = self.default_duration_seconds if duration_seconds is None else duration_seconds
        notification = Notification(
            id=f"toast-{uuid.uuid4()}",
            level=NotificationLevel(level),
            title=title,
            description=description,
            duration_seconds=duration,
            created_at=self.now(),
        )
        self._items.append(notification)
        while len(self._items) > self.capacity:
            evicted = self._items.popleft()
            self._cancel_timer(evicted.id)
        self._schedule_expiry(notification)
        self._publish()
        return notification

    def success(self, title: str, description: str | None = None) -> Notification | None:
        return self.push(NotificationLevel.SUCCESS, title, description)

    def info(self, title: str, description: str | None = None) -> Notification | None:
        return self.push(NotificationLevel.INFO, title, description)

    def warning(self, title: str, description: str | None = None) -> Notification | None:
        return self.push(NotificationLevel.WARNING, title, description)

    def error(self, title: str, description: str | None = None) -> Notification | None:
        return self.push(NotificationLevel.ERROR, title, description)

    def dismiss(self, notification_id: str) -> bool:
        self._cancel_timer(notification_id)
        before = len(self._items)
        self._items = deque(item for item in self._items if item.id != notification_id)
        removed = len(self._items) != before
        if removed:
            self._publish()
        return removed

    def active(self) -> list[Notification]:
        self._expire()
        return list(self._items)

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._items.clear()
        self._listeners.clear()
        self._closed = True

    def _expire(self) -> None:
        current = self.now()
        expired = [
            item.id
            for item in self._items
            if item.expires_at is not None and item.expires_at <= current
        ]
        for notification_id in expired:
            self.dismiss(notification_id)

    def _schedule_expiry(self, notification: Notification) -> None:
        if notification.duration_seconds <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[notification.id] = loop.call_later(
            notification.duration_seconds,
            self.dismiss,
            notification.id,
        )

    def _cancel_timer(self, notification_id: str) -> None:
        handle = self._timers.pop(notification_id, None)
        if handle is not None:
            handle.cancel()

    def _publish(self) -> None:
        snapshot = list(self._items)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _log.exception("notification listener failed")
