from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from .config import ConfigError, load_config
from .exceptions import ApiError
from .models import Direction, Product, optimistic_stock_level
from .mutations import MutationStatus
from .notifications import Notification
from .projection import SortDirection, SortField
from .session import InventorySession


def _product_row(product: Product) -> dict[str, Any]:
    payload = product.model_dump(exclude_none=True, mode="json")
    return {key: payload.get(key) for key in ("id", "name", "barcode", "category", "price", "current_stock", "min_stock")}


def _print_notifications(notifications: list[Notification]) -> None:
    for notification in notifications:
        description = f" - {notification.description}" if notification.description else ""
        print(f"[{notification.level.value}] {notification.title}{description}")


def _confirm_large_quantity(assume_yes: bool):
    def confirm(quantity: int, direction: Direction) -> bool:
        if assume_yes:
            return True
        if not sys.stdin.isatty():
            return False
        action = "add" if direction is Direction.IN else "remove"
        answer = input(f"Large stock update: {action} {quantity} units? [y/N] ").strip().lower()
        return answer in {"y", "yes"}

    return confirm


async def cmd_list(session: InventorySession, args: argparse.Namespace) -> int:
    view = session.inventory_list()
    entry = await view.ensure()
    if entry.error is not None and not entry.has_value:
        raise entry.error
    if args.search:
        view.update_filter("search_query", args.search)
    if args.category:
        view.update_filter("category", args.category)
    if args.low_stock:
        view.update_filter("low_stock_only", True)
    view.update_filter("sort_field", args.sort_field)
    view.update_filter("sort_direction", args.sort_direction)

    projection = view.projection()
    print(f"Products: {projection.filtered_count} of {projection.total_count}")
    if projection.categories:
        print(f"Categories: {', '.join(projection.categories)}")
    for product in projection.items[: args.limit]:
        print(json.dumps(_product_row(product)))
    return 0


async def cmd_lookup(session: InventorySession, args: argparse.Namespace) -> int:
    entry = await session.product_query(args.barcode).ensure()
    if entry.error is not None:
        raise entry.error
    product = entry.value
    if product is None:
        print(json.dumps({"barcode": args.barcode, "found": False}))
        return 3
    session.recent_products().add(product.id)
    history = (await session.history_query(product.id).ensure()).value or []
    row = _product_row(product)
    row["recent_movements"] = [movement.model_dump(mode="json") for movement in history]
    print(json.dumps(row, indent=2))
    return 0


async def cmd_adjust(session: InventorySession, args: argparse.Namespace) -> int:
    entry = await session.product_query(args.barcode).ensure()
    if entry.error is not None:
        raise entry.error
    product = entry.value
    if product is None:
        print(json.dumps({"barcode": args.barcode, "found": False}))
        return 3
    history = session.history_query(product.id)
    await history.ensure()

    trigger = session.stock_trigger(product)
    result = await trigger.submit(args.quantity, args.direction, confirm=_confirm_large_quantity(args.yes))
    _print_notifications(session.notifications.active())
    if result.status is MutationStatus.CONFIRMED:
        session.recent_products().add(product.id)
        refreshed = await session.product_query(args.barcode).refetch()
        movements = (await history.refetch()).value
        if refreshed.value is not None:
            print(
                json.dumps(
                    {
                        "product_id": product.id,
                        "current_stock": optimistic_stock_level(refreshed.value, movements),
                        "movement_id": result.movement.id if result.movement else None,
                    }
                )
            )
        return 0
    if result.status is MutationStatus.CANCELLED:
        print("Cancelled: no changes were made.")
        return 0
    return 1


async def cmd_alerts(session: InventorySession, args: argparse.Namespace) -> int:
    view = session.inventory_list()
    entry = await view.ensure()
    if entry.error is not None and not entry.has_value:
        raise entry.error
    alerts = view.low_stock_alerts()
    print(f"Low stock: {len(alerts)}")
    for alert in alerts:
        row = _product_row(alert.product)
        row["deficit"] = alert.deficit
        print(json.dumps(row))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Point-of-sale inventory client")
    parser.add_argument("--env-file", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="Filtered, sorted product list")
    list_parser.add_argument("--search")
    list_parser.add_argument("--category")
    list_parser.add_argument("--low-stock", action="store_true")
    list_parser.add_argument("--sort-field", choices=[item.value for item in SortField], default=SortField.NAME.value)
    list_parser.add_argument(
        "--sort-direction",
        choices=[item.value for item in SortDirection],
        default=SortDirection.ASC.value,
    )
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.set_defaults(func=cmd_list)

    lookup_parser = subparsers.add_parser("lookup", help="Find a product by barcode")
    lookup_parser.add_argument("barcode")
    lookup_parser.set_defaults(func=cmd_lookup)

    adjust_parser = subparsers.add_parser("adjust", help="Add or remove stock for a product")
    adjust_parser.add_argument("barcode")
    adjust_parser.add_argument("quantity", type=float)
    adjust_parser.add_argument("direction", choices=[item.value for item in Direction])
    adjust_parser.add_argument("--yes", action="store_true", help="Confirm large quantities without prompting")
    adjust_parser.set_defaults(func=cmd_adjust)

    alerts_parser = subparsers.add_parser("alerts", help="Products below their minimum stock")
    alerts_parser.set_defaults(func=cmd_alerts)
    return parser


async def _run(args: argparse.Namespace) -> int:
    session = InventorySession(load_config(args.env_file))
    try:
        return await args.func(session, args)
    finally:
        session.close()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        code = asyncio.run(_run(args))
    except ConfigError as exc:
        print(json.dumps({"error": "CONFIG_ERROR", "message": str(exc)}, indent=2))
        raise SystemExit(2) from exc
    except ApiError as exc:
        print(json.dumps({"error": exc.code, "message": exc.message, "trace_id": exc.trace_id}, indent=2))
        raise SystemExit(1) from exc
    raise SystemExit(code)


if __name__ == "__main__":
    main()
