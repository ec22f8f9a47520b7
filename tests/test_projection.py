from __future__ import annotations

from decimal import Decimal

import pytest

from stocksync.projection import (
    DEFAULT_FILTERS,
    InventoryFilters,
    SortDirection,
    SortField,
    has_active_filters,
    is_low_stock,
    low_stock_alerts,
    project_products,
)

from tests.fakes import make_product


def _catalog():
    return [
        make_product("p1", name="Milk", barcode="111", category="Dairy", price=Decimal("1.20"), current_stock=4, min_stock=10),
        make_product("p2", name="bread", barcode="222", category="Bakery", price=Decimal("2.50"), current_stock=30, min_stock=5),
        make_product("p3", name="Apples", barcode=None, category="Produce", price=None, current_stock=None, min_stock=None),
        make_product("p4", name="Cheese", barcode="1119", category="Dairy", price=Decimal("7.00"), current_stock=0, min_stock=0),
        make_product("p5", name="Yogurt", barcode="555", category="dairy", price=Decimal("0.90"), current_stock=2, min_stock=3),
    ]


def _ids(projection) -> list[str]:
    return [product.id for product in projection.items]


def test_neutral_filters_only_sort() -> None:
    catalog = _catalog()
    projection = project_products(catalog, DEFAULT_FILTERS)
    assert projection.total_count == projection.filtered_count == len(catalog)
    assert _ids(projection) == ["p3", "p2", "p4", "p1", "p5"]


def test_empty_or_missing_product_set() -> None:
    projection = project_products(None)
    assert projection.items == ()
    assert projection.total_count == 0
    assert projection.categories == ()


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("milk", ["p1"]),
        ("  MILK  ", ["p1"]),
        ("111", ["p4", "p1"]),
        ("e", ["p3", "p2", "p4"]),
        ("   ", ["p3", "p2", "p4", "p1", "p5"]),
        ("nothing", []),
    ],
)
def test_text_filter_matches_name_or_barcode(query: str, expected: list[str]) -> None:
    projection = project_products(_catalog(), InventoryFilters(search_query=query))
    assert _ids(projection) == expected


def test_missing_barcode_never_matches_text() -> None:
    projection = project_products(_catalog(), InventoryFilters(search_query="None"))
    assert _ids(projection) == []


def test_category_filter_is_exact_and_case_sensitive() -> None:
    projection = project_products(_catalog(), InventoryFilters(category="Dairy"))
    assert _ids(projection) == ["p4", "p1"]
    assert projection.total_count == 5
    assert projection.filtered_count == 2


def test_low_stock_requires_configured_minimum() -> None:
    projection = project_products(_catalog(), InventoryFilters(low_stock_only=True))
    assert _ids(projection) == ["p1", "p5"]


@pytest.mark.parametrize(
    ("current", "minimum", "expected"),
    [
        (4, 10, True),
        (10, 10, False),
        (0, 0, False),
        (None, None, False),
        (None, 3, True),
        (float("nan"), 3, True),
        (1, float("nan"), False),
        (-2, 0, False),
    ],
)
def test_is_low_stock(current, minimum, expected) -> None:
    assert is_low_stock(make_product(current_stock=current, min_stock=minimum)) is expected


def test_filters_compose() -> None:
    filters = InventoryFilters(search_query="1", category="Dairy", low_stock_only=True)
    assert _ids(project_products(_catalog(), filters)) == ["p1"]


@pytest.mark.parametrize(
    ("field", "expected"),
    [
        (SortField.NAME, ["p3", "p2", "p4", "p1", "p5"]),
        (SortField.STOCK, ["p3", "p4", "p5", "p1", "p2"]),
        (SortField.PRICE, ["p3", "p5", "p1", "p2", "p4"]),
        (SortField.CATEGORY, ["p2", "p1", "p4", "p5", "p3"]),
    ],
)
def test_sort_fields_ascending(field: SortField, expected: list[str]) -> None:
    assert _ids(project_products(_catalog(), InventoryFilters(sort_field=field))) == expected


def test_sort_is_stable_in_both_directions() -> None:
    catalog = [
        make_product("a", name="Same", current_stock=1),
        make_product("b", name="same", current_stock=2),
        make_product("c", name="SAME", current_stock=1),
    ]
    asc = project_products(catalog, InventoryFilters(sort_field=SortField.NAME))
    desc = project_products(
        catalog,
        InventoryFilters(sort_field=SortField.NAME, sort_direction=SortDirection.DESC),
    )
    assert _ids(asc) == ["a", "b", "c"]
    assert _ids(desc) == ["a", "b", "c"]

    by_stock_desc = project_products(
        catalog,
        InventoryFilters(sort_field=SortField.STOCK, sort_direction=SortDirection.DESC),
    )
    assert _ids(by_stock_desc) == ["b", "a", "c"]


@pytest.mark.parametrize("field", list(SortField))
def test_descending_equals_reversed_ascending_without_ties(field: SortField) -> None:
    catalog = [
        make_product("x", name="Zeta", category="c", price=Decimal("3"), current_stock=7),
        make_product("y", name="alpha", category="A", price=Decimal("1"), current_stock=1),
        make_product("z", name="Mu", category="b", price=Decimal("2"), current_stock=4),
    ]
    asc = project_products(catalog, InventoryFilters(sort_field=field))
    desc = project_products(catalog, InventoryFilters(sort_field=field, sort_direction=SortDirection.DESC))
    assert list(reversed(asc.items)) == list(desc.items)


def test_projection_does_not_mutate_input() -> None:
    catalog = _catalog()
    original = [product.id for product in catalog]
    project_products(catalog, InventoryFilters(sort_field=SortField.STOCK, sort_direction=SortDirection.DESC))
    assert [product.id for product in catalog] == original


def test_categories_are_distinct_sorted_and_pre_filter() -> None:
    projection = project_products(_catalog(), InventoryFilters(category="Bakery"))
    assert projection.categories == ("Bakery", "Dairy", "Produce", "dairy")


def test_has_active_filters() -> None:
    assert not has_active_filters(DEFAULT_FILTERS)
    assert has_active_filters(InventoryFilters(search_query="x"))
    assert has_active_filters(InventoryFilters(low_stock_only=True))
    assert has_active_filters(InventoryFilters(sort_direction=SortDirection.DESC))
    assert has_active_filters(InventoryFilters(sort_field=SortField.PRICE))


def test_low_stock_alerts_sorted_by_deficit() -> None:
    alerts = low_stock_alerts(_catalog())
    assert [(alert.product.id, alert.deficit) for alert in alerts] == [("p1", 6), ("p5", 1)]
    assert low_stock_alerts(None) == []


def test_blank_search_is_not_an_active_filter() -> None:
    assert not has_active_filters(InventoryFilters(search_query="   "))
