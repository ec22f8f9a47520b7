from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .cache import EntityCache, all_products_key, history_key, product_key
from .exceptions import MutationTimeoutError, ValidationError, describe_error
from .logger import get_logger, log_action
from .models import Direction, Product, StockMovement
from .notifications import NotificationChannel
from .record_store import RecordStore
from .validation import requires_confirmation, validate_direction, validate_quantity

_log = get_logger(__name__)

DEFAULT_LARGE_QUANTITY_THRESHOLD = 50

Confirm = Callable[[int, Direction], "bool | Awaitable[bool]"]


class MutationStatus(str, Enum):
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    BUSY = "busy"


@dataclass(frozen=True)
class MutationResult:
    status: MutationStatus
    mutation_id: str | None = None
    movement: StockMovement | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status is MutationStatus.CONFIRMED


@dataclass
class MutationContext:
    mutation_id: str
    keys: tuple[str, ...]
    snapshots: dict[str, Any]


@dataclass
class MutationCoordinator:
    """Optimistic stock adjustments against the entity cache.

    validate -> begin (snapshot) -> speculative apply -> execute -> settle.
    The coordinator does not serialize mutations on the same product; callers
    go through ``StockMutationTrigger`` for that.
    """

    cache: EntityCache
    record_store: RecordStore
    notifications: NotificationChannel
    large_quantity_threshold: int = DEFAULT_LARGE_QUANTITY_THRESHOLD
    timeout_seconds: float | None = None
    in_flight: dict[str, Direction] = field(default_factory=dict)
    _contexts: dict[str, MutationContext] = field(default_factory=dict, init=False, repr=False)

    async def adjust_stock(
        self,
        product: Product,
        quantity: object,
        direction: Direction | str,
        confirm: Confirm | None = None,
    ) -> MutationResult:
        try:
            direction = validate_direction(direction)
            magnitude = validate_quantity(quantity)
        except ValidationError as exc:
            log_action(
                _log,
                "mutations",
                "adjust_stock",
                "rejected",
                level=logging.WARNING,
                product_id=product.id,
                quantity=repr(quantity),
                reason=exc.message,
            )
            self.notifications.warning("Invalid quantity", "Enter a positive whole number of units.")
            return MutationResult(MutationStatus.REJECTED, error=exc)

        if requires_confirmation(magnitude, self.large_quantity_threshold):
            if not await _ask(confirm, magnitude, direction):
                log_action(
                    _log,
                    "mutations",
                    "adjust_stock",
                    "cancelled",
                    product_id=product.id,
                    quantity=magnitude,
                    direction=direction.value,
                )
                return MutationResult(MutationStatus.CANCELLED)

        context = self.begin(product)
        try:
            self.apply(context, product, magnitude, direction)
            log_action(
                _log,
                "mutations",
                "adjust_stock",
                "initiated",
                mutation_id=context.mutation_id,
                product_id=product.id,
                quantity=magnitude,
                direction=direction.value,
            )
            try:
                movement = await self._execute(product.id, magnitude, direction)
            except asyncio.CancelledError:
                self.rollback(context)
                raise
            except Exception as exc:
                self.rollback(context)
                log_action(
                    _log,
                    "mutations",
                    "adjust_stock",
                    "rolled_back",
                    level=logging.ERROR,
                    mutation_id=context.mutation_id,
                    product_id=product.id,
                    error=type(exc).__name__,
                    message=describe_error(exc),
                )
                self.notifications.error("Stock update failed", describe_error(exc))
                return MutationResult(MutationStatus.ROLLED_BACK, mutation_id=context.mutation_id, error=exc)

            self.confirm(context)
            log_action(
                _log,
                "mutations",
                "adjust_stock",
                "confirmed",
                mutation_id=context.mutation_id,
                product_id=product.id,
                movement_id=movement.id,
            )
            verb = "added to" if direction is Direction.IN else "removed from"
            self.notifications.success("Stock updated", f"{magnitude} units {verb} {product.name}")
            return MutationResult(MutationStatus.CONFIRMED, mutation_id=context.mutation_id, movement=movement)
        finally:
            self._contexts.pop(context.mutation_id, None)

    def begin(self, product: Product) -> MutationContext:
        keys = tuple(_touched_keys(product))
        context = MutationContext(
            mutation_id=str(uuid.uuid4()),
            keys=keys,
            snapshots={key: self.cache.snapshot(key) for key in keys},
        )
        self._contexts[context.mutation_id] = context
        return context

    def apply(self, context: MutationContext, product: Product, quantity: int, direction: Direction) -> None:
        key = history_key(product.id)
        current = self.cache.read(key)
        if not current.has_value:
            return
        synthetic = StockMovement.synthetic(product.id, quantity, direction)
        self.cache.write(key, [synthetic, *(current.value or [])])

    def confirm(self, context: MutationContext) -> None:
        for key in context.keys:
            self.cache.invalidate(key)
        self.cache.invalidate(all_products_key())

    def rollback(self, context: MutationContext) -> None:
        for key in context.keys:
            snapshot = context.snapshots.get(key)
            if snapshot is not None:
                self.cache.write(key, snapshot)
        # Restored entries stay stale until the record store is read again.
        for key in context.keys:
            self.cache.invalidate(key)

    def active_contexts(self) -> list[MutationContext]:
        return list(self._contexts.values())

    async def _execute(self, product_id: str, quantity: int, direction: Direction) -> StockMovement:
        call = self.record_store.add_stock_movement(product_id, quantity, direction)
        if self.timeout_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise MutationTimeoutError(
                code="TIMEOUT_ERROR",
                message=f"The record store did not answer within {self.timeout_seconds:g}s",
            ) from exc


@dataclass
class StockMutationTrigger:
    """Per-product mutation entry point with a pending flag keyed by direction."""

    coordinator: MutationCoordinator
    product: Product

    @property
    def loading_action(self) -> Direction | None:
        return self.coordinator.in_flight.get(self.product.id)

    @property
    def is_pending(self) -> bool:
        return self.loading_action is not None

    async def submit(
        self,
        quantity: object,
        direction: Direction | str,
        confirm: Confirm | None = None,
    ) -> MutationResult:
        try:
            pending = Direction(direction)
        except ValueError:
            # Rejected by the coordinator without touching the cache.
            return await self.coordinator.adjust_stock(self.product, quantity, direction, confirm)
        if not begin_mutation(self.coordinator, self.product.id, pending):
            return MutationResult(MutationStatus.BUSY)
        try:
            return await self.coordinator.adjust_stock(self.product, quantity, pending, confirm)
        finally:
            end_mutation(self.coordinator, self.product.id)


def begin_mutation(coordinator: MutationCoordinator, product_id: str, direction: Direction) -> bool:
    if product_id in coordinator.in_flight:
        return False
    coordinator.in_flight[product_id] = direction
    return True


def end_mutation(coordinator: MutationCoordinator, product_id: str) -> None:
    coordinator.in_flight.pop(product_id, None)


def _touched_keys(product: Product) -> list[str]:
    keys = []
    if product.barcode:
        keys.append(product_key(product.barcode))
    keys.append(history_key(product.id))
    return keys


async def _ask(confirm: Confirm | None, quantity: int, direction: Direction) -> bool:
    if confirm is None:
        return False
    answer = confirm(quantity, direction)
    if inspect.isawaitable(answer):
        answer = await answer
    return bool(answer)
