from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, fields, replace
from typing import Any

from .cache import CacheEntry
from .exceptions import ValidationError, ValidationIssue
from .projection import (
    DEFAULT_FILTERS,
    InventoryFilters,
    LowStockAlert,
    ProductProjection,
    SortDirection,
    SortField,
    has_active_filters,
    low_stock_alerts,
    project_products,
)
from .queries import QueryHandle

FILTER_KEYS = tuple(item.name for item in fields(InventoryFilters))


@dataclass
class InventoryListView:
    """Filtered, sorted product list over the ``product:all`` cache entry.

    The projection is recomputed only when the cache entry version or the
    filters change.
    """

    query: QueryHandle
    filters: InventoryFilters = DEFAULT_FILTERS
    _memo_key: tuple[Any, ...] | None = field(default=None, init=False, repr=False)
    _memo: ProductProjection | None = field(default=None, init=False, repr=False)

    def update_filter(self, key: str, value: Any) -> InventoryFilters:
        self.filters = replace(self.filters, **{key: _coerce_filter(key, value)})
        return self.filters

    def reset_filters(self) -> InventoryFilters:
        self.filters = DEFAULT_FILTERS
        return self.filters

    def clear_filter(self, key: str) -> InventoryFilters:
        if key not in FILTER_KEYS:
            raise ValidationError([ValidationIssue(field=key, reason="unknown filter key")])
        if key in {"sort_field", "sort_direction"}:
            self.filters = replace(
                self.filters,
                sort_field=DEFAULT_FILTERS.sort_field,
                sort_direction=DEFAULT_FILTERS.sort_direction,
            )
        else:
            self.filters = replace(self.filters, **{key: getattr(DEFAULT_FILTERS, key)})
        return self.filters

    @property
    def has_active_filters(self) -> bool:
        return has_active_filters(self.filters)

    def projection(self) -> ProductProjection:
        entry = self.query.entry
        memo_key = (entry.key, entry.version, id(entry.value), self.filters)
        if self._memo is None or self._memo_key != memo_key:
            self._memo = project_products(entry.value, self.filters)
            self._memo_key = memo_key
        return self._memo

    @property
    def products(self) -> tuple:
        return self.projection().items

    @property
    def categories(self) -> tuple[str, ...]:
        return self.projection().categories

    @property
    def total_count(self) -> int:
        return self.projection().total_count

    @property
    def filtered_count(self) -> int:
        return self.projection().filtered_count

    def low_stock_alerts(self) -> list[LowStockAlert]:
        return low_stock_alerts(self.query.value)

    @property
    def is_loading(self) -> bool:
        return self.query.is_loading

    @property
    def error(self) -> BaseException | None:
        return self.query.error

    def refetch(self) -> asyncio.Task:
        return self.query.refetch()

    async def ensure(self) -> CacheEntry:
        return await self.query.ensure()


def _coerce_filter(key: str, value: Any) -> Any:
    try:
        if key == "search_query":
            return _require_type(value, str)
        if key == "category":
            return "" if value is None else _require_type(value, str)
        if key == "low_stock_only":
            return _require_type(value, bool)
        if key == "sort_field":
            return SortField(value)
        if key == "sort_direction":
            return SortDirection(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError([ValidationIssue(field=key, reason=str(exc))]) from exc
    raise ValidationError([ValidationIssue(field=key, reason="unknown filter key")])


def _require_type(value: Any, expected: type) -> Any:
    if not isinstance(value, expected):
        raise TypeError(f"expected {expected.__name__}, got {type(value).__name__}")
    return value
