from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from .logger import get_logger, log_action

T = TypeVar("T")

Loader = Callable[[], Awaitable[Any]]
Listener = Callable[[str], None]

_log = get_logger(__name__)


class CacheState(str, Enum):
    ABSENT = "absent"
    FETCHING = "fetching"
    FRESH = "fresh"
    STALE = "stale"
    ERROR = "error"


def all_products_key() -> str:
    return "product:all"


def product_key(barcode: str) -> str:
    return f"product:{barcode}"


def history_key(product_id: str) -> str:
    return f"history:{product_id}"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    state: CacheState
    value: T | None = None
    error: BaseException | None = None
    fetched_at: float | None = None
    stale_after: float = 0.0
    version: int = 0
    has_value: bool = False

    @property
    def is_fetching(self) -> bool:
        return self.state is CacheState.FETCHING

    @property
    def is_loading(self) -> bool:
        # Fetching with nothing to show yet.
        return self.is_fetching and not self.has_value

    @property
    def needs_fetch(self) -> bool:
        return self.state in {CacheState.ABSENT, CacheState.STALE, CacheState.ERROR}


@dataclass
class _Record:
    value: Any = None
    has_value: bool = False
    state: CacheState = CacheState.ABSENT
    error: BaseException | None = None
    fetched_at: float | None = None
    version: int = 0
    invalidated_while_fetching: bool = False


@dataclass
class EntityCache:
    """Single source of truth for remotely-sourced entities.

    All operations except the loader await inside ``fetch`` are synchronous.
    Consumers get frozen ``CacheEntry`` views and never touch the records.
    """

    stale_after_seconds: float = 300.0
    now: Callable[[], float] = time.monotonic
    _records: dict[str, _Record] = field(default_factory=dict, init=False, repr=False)
    _inflight: dict[str, asyncio.Task] = field(default_factory=dict, init=False, repr=False)
    _listeners: list[Listener] = field(default_factory=list, init=False, repr=False)

    def read(self, key: str) -> CacheEntry:
        record = self._records.get(key)
        if record is None:
            return CacheEntry(key=key, state=CacheState.ABSENT, stale_after=self.stale_after_seconds)
        state = record.state
        if state is CacheState.FRESH and self._expired(record):
            state = CacheState.STALE
        return CacheEntry(
            key=key,
            state=state,
            value=record.value,
            error=record.error,
            fetched_at=record.fetched_at,
            stale_after=self.stale_after_seconds,
            version=record.version,
            has_value=record.has_value,
        )

    def fetch(self, key: str, loader: Loader) -> asyncio.Task:
        """Start loading ``key`` unless a load for it is already in flight.

        The returned task resolves to the settled ``CacheEntry`` and never
        raises for loader failures; those are recorded on the entry.
        """
        inflight = self._inflight.get(key)
        if inflight is not None and not inflight.done():
            return inflight
        loop = asyncio.get_running_loop()
        record = self._records.setdefault(key, _Record())
        record.state = CacheState.FETCHING
        record.invalidated_while_fetching = False
        self._touch(key, record)
        task = loop.create_task(self._load(key, loader))
        self._inflight[key] = task
        return task

    def write(self, key: str, value: Any) -> None:
        record = self._records.setdefault(key, _Record())
        record.value = value
        record.has_value = True
        record.state = CacheState.FRESH
        record.error = None
        record.fetched_at = self.now()
        self._touch(key, record)

    def invalidate(self, key: str) -> None:
        record = self._records.get(key)
        if record is None:
            return
        if record.state is CacheState.FETCHING:
            # The in-flight result may predate this invalidation.
            record.invalidated_while_fetching = True
            return
        record.state = CacheState.STALE
        self._touch(key, record)

    def invalidate_prefix(self, prefix: str) -> None:
        for key in [key for key in self._records if key.startswith(prefix)]:
            self.invalidate(key)

    def snapshot(self, key: str) -> Any | None:
        record = self._records.get(key)
        if record is None or not record.has_value:
            return None
        return copy.deepcopy(record.value)

    def is_fetching(self, key: str) -> bool:
        inflight = self._inflight.get(key)
        return inflight is not None and not inflight.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def keys(self) -> list[str]:
        return list(self._records)

    def clear(self) -> None:
        for task in self._inflight.values():
            if not task.done():
                task.cancel()
        self._inflight.clear()
        self._records.clear()

    async def _load(self, key: str, loader: Loader) -> CacheEntry:
        try:
            value = await loader()
        except asyncio.CancelledError:
            self._settle_cancelled(key)
            raise
        except Exception as exc:
            record = self._records.setdefault(key, _Record())
            record.state = CacheState.ERROR
            record.error = exc
            self._touch(key, record)
            log_action(
                _log,
                "cache",
                "fetch",
                "error",
                level=logging.WARNING,
                key=key,
                error=type(exc).__name__,
                message=str(exc),
            )
        else:
            record = self._records.setdefault(key, _Record())
            stale_on_arrival = record.invalidated_while_fetching
            record.invalidated_while_fetching = False
            self.write(key, value)
            if stale_on_arrival:
                self.invalidate(key)
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                self._inflight.pop(key, None)
        return self.read(key)

    def _settle_cancelled(self, key: str) -> None:
        record = self._records.get(key)
        if record is None or record.state is not CacheState.FETCHING:
            return
        record.state = CacheState.STALE if record.has_value else CacheState.ABSENT
        self._touch(key, record)

    def _expired(self, record: _Record) -> bool:
        if record.fetched_at is None:
            return True
        return self.now() - record.fetched_at >= self.stale_after_seconds

    def _touch(self, key: str, record: _Record) -> None:
        record.version += 1
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                _log.exception("cache listener failed for key %s", key)
