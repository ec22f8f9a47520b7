from __future__ import annotations

import asyncio

import pytest

from stocksync.cache import CacheState, EntityCache, all_products_key, history_key, product_key
from stocksync.exceptions import AuthorizationError, MutationTimeoutError
from stocksync.models import Direction, optimistic_stock_level
from stocksync.mutations import MutationCoordinator, MutationStatus, StockMutationTrigger
from stocksync.notifications import NotificationChannel, NotificationLevel
from stocksync.queries import QueryHandle

from tests.fakes import FakeRecordStore, make_movement, make_product


def _setup(current_stock: int = 10, **coordinator_kwargs):
    product = make_product("rec1", barcode="5901234123457", current_stock=current_stock)
    store = FakeRecordStore(
        products=[product],
        movements={"rec1": [make_movement("m1", "rec1", 10, days=0)]},
    )
    cache = EntityCache()
    cache.write(product_key(product.barcode), product)
    cache.write(history_key(product.id), [make_movement("m1", "rec1", 10, days=0)])
    cache.write(all_products_key(), [product])
    notifications = NotificationChannel()
    coordinator = MutationCoordinator(cache=cache, record_store=store, notifications=notifications, **coordinator_kwargs)
    return product, store, cache, notifications, coordinator


def test_success_shows_synthetic_movement_then_invalidates_for_refetch() -> None:
    async def scenario():
        product, store, cache, notifications, coordinator = _setup()
        store.write_gate = asyncio.Event()

        task = asyncio.create_task(coordinator.adjust_stock(product, 5, Direction.IN))
        await asyncio.sleep(0)

        speculative = cache.read(history_key("rec1")).value
        in_flight_contexts = len(coordinator.active_contexts())
        store.write_gate.set()
        result = await task

        product_entry = cache.read(product_key(product.barcode))
        history_entry = cache.read(history_key("rec1"))
        all_entry = cache.read(all_products_key())

        handle = QueryHandle(
            cache=cache,
            key=product_key(product.barcode),
            loader=lambda: store.get_product_by_barcode(product.barcode),
        )
        refreshed = await handle.refetch()
        return speculative, in_flight_contexts, result, product_entry, history_entry, all_entry, refreshed, coordinator, notifications

    (
        speculative,
        in_flight_contexts,
        result,
        product_entry,
        history_entry,
        all_entry,
        refreshed,
        coordinator,
        notifications,
    ) = asyncio.run(scenario())

    assert speculative[0].pending
    assert speculative[0].quantity == 5
    assert speculative[0].id.startswith("pending-")
    assert [m.id for m in speculative[1:]] == ["m1"]
    assert in_flight_contexts == 1

    assert result.status is MutationStatus.CONFIRMED
    assert result.movement.quantity == 5
    assert product_entry.state is CacheState.STALE
    assert history_entry.state is CacheState.STALE
    assert all_entry.state is CacheState.STALE
    assert refreshed.value.current_stock == 15
    assert coordinator.active_contexts() == []
    [toast] = notifications.active()
    assert toast.level is NotificationLevel.SUCCESS


def test_out_movement_is_negative() -> None:
    async def scenario():
        product, store, cache, _, coordinator = _setup()
        store.write_gate = asyncio.Event()
        task = asyncio.create_task(coordinator.adjust_stock(product, 3, "OUT"))
        await asyncio.sleep(0)
        head = cache.read(history_key("rec1")).value[0]
        store.write_gate.set()
        await task
        return head, store

    head, store = asyncio.run(scenario())
    assert head.quantity == -3
    assert head.direction is Direction.OUT
    assert store.writes() == [("add_stock_movement", "rec1", 3, Direction.OUT)]


def test_failure_restores_snapshot_and_removes_synthetic_movement() -> None:
    async def scenario():
        product, store, cache, notifications, coordinator = _setup(current_stock=10)
        before = cache.snapshot(product_key(product.barcode))
        store.fail_writes_with("Record store unavailable")
        result = await coordinator.adjust_stock(product, 5, Direction.IN)
        return before, result, cache, notifications, coordinator, product

    before, result, cache, notifications, coordinator, product = asyncio.run(scenario())

    assert result.status is MutationStatus.ROLLED_BACK
    restored = cache.read(product_key(product.barcode))
    assert restored.value == before
    assert restored.value.current_stock == 10
    history = cache.read(history_key("rec1"))
    assert not any(movement.pending for movement in history.value)
    assert history.state is CacheState.STALE
    assert coordinator.active_contexts() == []
    [toast] = notifications.active()
    assert toast.level is NotificationLevel.ERROR
    assert toast.description == "Record store unavailable"


def test_rollback_on_authorization_error() -> None:
    async def scenario():
        product, store, cache, notifications, coordinator = _setup()
        store.write_error = AuthorizationError(code="FORBIDDEN", message="Not allowed", status_code=403)
        result = await coordinator.adjust_stock(product, 1, Direction.OUT)
        return result, notifications

    result, notifications = asyncio.run(scenario())
    assert result.status is MutationStatus.ROLLED_BACK
    assert isinstance(result.error, AuthorizationError)
    assert notifications.active()[0].description == "Not allowed"


@pytest.mark.parametrize("quantity", [0, -3, float("nan"), 2.5, True, "5", None, float("inf")])
def test_invalid_quantity_never_reaches_remote_or_cache(quantity) -> None:
    async def scenario():
        product, store, cache, notifications, coordinator = _setup()
        versions = {key: cache.read(key).version for key in cache.keys()}
        result = await coordinator.adjust_stock(product, quantity, Direction.IN)
        after = {key: cache.read(key).version for key in cache.keys()}
        return result, store, versions, after, notifications

    result, store, versions, after, notifications = asyncio.run(scenario())
    assert result.status is MutationStatus.REJECTED
    assert store.writes() == []
    assert versions == after
    assert notifications.active()[0].level is NotificationLevel.WARNING


def test_integral_float_quantity_is_accepted() -> None:
    async def scenario():
        product, store, _, _, coordinator = _setup()
        return await coordinator.adjust_stock(product, 5.0, Direction.IN), store

    result, store = asyncio.run(scenario())
    assert result.ok
    assert store.writes() == [("add_stock_movement", "rec1", 5, Direction.IN)]


def test_large_quantity_without_confirmation_is_a_silent_noop() -> None:
    async def scenario():
        product, store, cache, notifications, coordinator = _setup()
        versions = {key: cache.read(key).version for key in cache.keys()}
        asked = []

        def decline(quantity, direction):
            asked.append((quantity, direction))
            return False

        declined = await coordinator.adjust_stock(product, 75, Direction.IN, confirm=decline)
        missing = await coordinator.adjust_stock(product, 75, Direction.IN)
        after = {key: cache.read(key).version for key in cache.keys()}
        return declined, missing, asked, store, versions, after, notifications

    declined, missing, asked, store, versions, after, notifications = asyncio.run(scenario())
    assert declined.status is MutationStatus.CANCELLED
    assert missing.status is MutationStatus.CANCELLED
    assert asked == [(75, Direction.IN)]
    assert store.writes() == []
    assert versions == after
    assert notifications.active() == []


def test_large_quantity_proceeds_when_confirmed_async() -> None:
    async def scenario():
        product, store, _, _, coordinator = _setup()

        async def approve(quantity, direction):
            return True

        return await coordinator.adjust_stock(product, 75, Direction.IN, confirm=approve), store

    result, store = asyncio.run(scenario())
    assert result.ok
    assert store.writes() == [("add_stock_movement", "rec1", 75, Direction.IN)]


def test_threshold_itself_needs_no_confirmation() -> None:
    async def scenario():
        product, store, _, _, coordinator = _setup(large_quantity_threshold=50)
        return await coordinator.adjust_stock(product, 50, Direction.OUT), store

    result, store = asyncio.run(scenario())
    assert result.ok
    assert len(store.writes()) == 1


def test_timeout_is_treated_as_failure() -> None:
    async def scenario():
        product, store, cache, notifications, coordinator = _setup(timeout_seconds=0.01)
        store.write_gate = asyncio.Event()
        result = await coordinator.adjust_stock(product, 2, Direction.IN)
        return result, cache, product

    result, cache, product = asyncio.run(scenario())
    assert result.status is MutationStatus.ROLLED_BACK
    assert result.error.code == "TIMEOUT_ERROR"
    assert cache.read(product_key(product.barcode)).value.current_stock == 10


def test_uncached_history_is_not_created_speculatively() -> None:
    async def scenario():
        product = make_product("rec9", barcode=None)
        store = FakeRecordStore(products=[product])
        cache = EntityCache()
        coordinator = MutationCoordinator(cache=cache, record_store=store, notifications=NotificationChannel())
        result = await coordinator.adjust_stock(product, 1, Direction.IN)
        return result, cache

    result, cache = asyncio.run(scenario())
    assert result.ok
    assert cache.read(history_key("rec9")).state is CacheState.ABSENT


def test_trigger_reports_pending_direction_and_blocks_duplicates() -> None:
    async def scenario():
        product, store, _, _, coordinator = _setup()
        store.write_gate = asyncio.Event()
        trigger = StockMutationTrigger(coordinator=coordinator, product=product)
        other_view = StockMutationTrigger(coordinator=coordinator, product=product)

        first = asyncio.create_task(trigger.submit(2, Direction.OUT))
        await asyncio.sleep(0)
        pending = (trigger.loading_action, other_view.is_pending)
        duplicate = await other_view.submit(4, Direction.IN)
        store.write_gate.set()
        settled = await first
        return pending, duplicate, settled, trigger, store

    pending, duplicate, settled, trigger, store = asyncio.run(scenario())
    assert pending == (Direction.OUT, True)
    assert duplicate.status is MutationStatus.BUSY
    assert settled.ok
    assert trigger.loading_action is None
    assert len(store.writes()) == 1


def test_trigger_rejects_unknown_direction_without_locking() -> None:
    async def scenario():
        product, store, _, _, coordinator = _setup()
        trigger = StockMutationTrigger(coordinator=coordinator, product=product)
        result = await trigger.submit(1, "SIDEWAYS")
        return result, trigger, store

    result, trigger, store = asyncio.run(scenario())
    assert result.status is MutationStatus.REJECTED
    assert not trigger.is_pending
    assert store.writes() == []


def test_optimistic_stock_level_counts_pending_movements() -> None:
    product = make_product(current_stock=10)
    pending = make_movement("m2", product.id, 5).model_copy(update={"pending": True})
    confirmed = make_movement("m1", product.id, 10)
    assert optimistic_stock_level(product, [pending, confirmed]) == 15
    assert optimistic_stock_level(product, None) == 10


def test_failed_mutation_leaves_restored_entries_stale() -> None:
    async def scenario():
        product, store, cache, _, coordinator = _setup(timeout_seconds=0.01)
        cache.invalidate(product_key(product.barcode))
        store.write_gate = asyncio.Event()
        result = await coordinator.adjust_stock(product, 5, Direction.IN)
        return result, cache, product

    result, cache, product = asyncio.run(scenario())
    assert result.status is MutationStatus.ROLLED_BACK
    assert isinstance(result.error, MutationTimeoutError)
    entry = cache.read(product_key(product.barcode))
    assert entry.state is CacheState.STALE
    assert entry.needs_fetch
    assert entry.value.current_stock == 10


def test_failed_mutation_keeps_recorded_error_refetchable() -> None:
    async def scenario():
        product, store, cache, _, coordinator = _setup()
        store.fail_writes_with("offline")
        await coordinator.adjust_stock(product, 2, Direction.OUT)
        return cache.read(product_key(product.barcode)), cache.read(history_key(product.id))

    product_entry, history_entry = asyncio.run(scenario())
    assert product_entry.state is CacheState.STALE
    assert history_entry.state is CacheState.STALE
