from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .models import Product, finite_or_zero


class SortField(str, Enum):
    NAME = "name"
    STOCK = "stock"
    PRICE = "price"
    CATEGORY = "category"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class InventoryFilters:
    search_query: str = ""
    category: str = ""
    low_stock_only: bool = False
    sort_field: SortField = SortField.NAME
    sort_direction: SortDirection = SortDirection.ASC


DEFAULT_FILTERS = InventoryFilters()


@dataclass(frozen=True)
class ProductProjection:
    items: tuple[Product, ...]
    total_count: int
    filtered_count: int
    categories: tuple[str, ...]


@dataclass(frozen=True)
class LowStockAlert:
    product: Product
    deficit: float


def is_low_stock(product: Product) -> bool:
    minimum = product.min_stock_level
    return minimum > 0 and product.stock_level < minimum


def matches_search(product: Product, search_query: str) -> bool:
    needle = search_query.strip().lower()
    if not needle:
        return True
    if needle in product.name.lower():
        return True
    return product.barcode is not None and needle in product.barcode.lower()


def sort_key(product: Product, sort_field: SortField) -> str | float:
    if sort_field is SortField.NAME:
        return product.name.lower()
    if sort_field is SortField.CATEGORY:
        return (product.category or "").lower()
    if sort_field is SortField.STOCK:
        return product.stock_level
    return finite_or_zero(product.price)


def sort_products(products: Iterable[Product], sort_field: SortField, sort_direction: SortDirection) -> list[Product]:
    # sorted() is stable for reverse=True too: equal keys keep input order.
    return sorted(
        products,
        key=lambda product: sort_key(product, sort_field),
        reverse=sort_direction is SortDirection.DESC,
    )


def categories_of(products: Iterable[Product]) -> tuple[str, ...]:
    return tuple(sorted({product.category for product in products if product.category and product.category.strip()}))


def project_products(products: Sequence[Product] | None, filters: InventoryFilters = DEFAULT_FILTERS) -> ProductProjection:
    source = list(products or [])
    result = source
    if filters.search_query.strip():
        result = [product for product in result if matches_search(product, filters.search_query)]
    if filters.category:
        result = [product for product in result if product.category == filters.category]
    if filters.low_stock_only:
        result = [product for product in result if is_low_stock(product)]
    ordered = sort_products(result, filters.sort_field, filters.sort_direction)
    return ProductProjection(
        items=tuple(ordered),
        total_count=len(source),
        filtered_count=len(ordered),
        categories=categories_of(source),
    )


def has_active_filters(filters: InventoryFilters) -> bool:
    return bool(
        filters.search_query.strip()
        or filters.category
        or filters.low_stock_only
        or filters.sort_field is not SortField.NAME
        or filters.sort_direction is not SortDirection.ASC
    )


def low_stock_alerts(products: Sequence[Product] | None) -> list[LowStockAlert]:
    """Products below their minimum, most urgent first."""
    alerts = [
        LowStockAlert(product=product, deficit=product.min_stock_level - product.stock_level)
        for product in products or []
        if is_low_stock(product)
    ]
    return sorted(alerts, key=lambda alert: alert.deficit, reverse=True)
