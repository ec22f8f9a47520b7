from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .cache import CacheEntry, CacheState, EntityCache, Loader
from .error_mapper import is_retryable
from .logger import get_logger, log_action

_log = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


def with_retries(
    loader: Loader,
    retries: int,
    backoff_seconds: float = 0.0,
    sleep: Sleeper = asyncio.sleep,
    key: str | None = None,
) -> Loader:
    attempts = max(0, retries) + 1

    async def run() -> Any:
        for attempt in range(attempts):
            try:
                return await loader()
            except Exception as exc:
                if attempt >= attempts - 1 or not is_retryable(exc):
                    raise
                log_action(
                    _log,
                    "queries",
                    "retry",
                    "scheduled",
                    level=logging.DEBUG,
                    key=key,
                    attempt=attempt + 1,
                    error=type(exc).__name__,
                )
                await sleep(backoff_seconds * (2**attempt))
        raise RuntimeError("retry loop exited without a result")

    return run


@dataclass
class QueryHandle:
    """Read handle over one cache key: value, loading flag, error, refetch."""

    cache: EntityCache
    key: str
    loader: Loader
    retries: int = 0
    retry_backoff_seconds: float = 0.0
    sleep: Sleeper = asyncio.sleep

    @property
    def entry(self) -> CacheEntry:
        return self.cache.read(self.key)

    @property
    def value(self) -> Any:
        return self.entry.value

    @property
    def state(self) -> CacheState:
        return self.entry.state

    @property
    def is_loading(self) -> bool:
        return self.entry.is_loading

    @property
    def is_fetching(self) -> bool:
        return self.entry.is_fetching

    @property
    def error(self) -> BaseException | None:
        entry = self.entry
        return entry.error if entry.state is CacheState.ERROR else None

    def refetch(self) -> asyncio.Task:
        loader = with_retries(
            self.loader,
            self.retries,
            self.retry_backoff_seconds,
            sleep=self.sleep,
            key=self.key,
        )
        return self.cache.fetch(self.key, loader)

    async def ensure(self) -> CacheEntry:
        """Stale-while-revalidate read.

        Without a value, waits for the load. With a stale or failed value,
        returns it immediately and revalidates in the background.
        """
        entry = self.entry
        if entry.has_value:
            if entry.needs_fetch:
                self.refetch()
            return self.cache.read(self.key)
        if entry.needs_fetch or entry.is_fetching:
            return await self.refetch()
        return entry

    def subscribe(self, callback: Callable[[CacheEntry], None]) -> Callable[[], None]:
        def listener(changed_key: str) -> None:
            if changed_key == self.key:
                callback(self.entry)

        return self.cache.subscribe(listener)
