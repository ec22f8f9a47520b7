from __future__ import annotations

from dataclasses import dataclass, field

from .cache import EntityCache, all_products_key, history_key, product_key
from .config import ClientConfig
from .http_client import HttpClient
from .inventory_list import InventoryListView
from .logger import configure_logging
from .models import Product
from .mutations import MutationCoordinator, StockMutationTrigger
from .notifications import NotificationChannel
from .preferences import PreferenceStore, RecentProducts
from .queries import QueryHandle
from .record_store import HttpRecordStore, RecordStore


@dataclass
class InventorySession:
    """Process-wide wiring: one cache, one notification channel, one coordinator."""

    config: ClientConfig
    record_store: RecordStore | None = None
    cache: EntityCache | None = None
    notifications: NotificationChannel | None = None
    preferences: PreferenceStore | None = None
    coordinator: MutationCoordinator = field(init=False)

    def __post_init__(self) -> None:
        configure_logging(self.config.log_level)
        if self.record_store is None:
            self.record_store = HttpRecordStore(http=HttpClient(config=self.config))
        self.cache = self.cache or EntityCache(stale_after_seconds=self.config.stale_after_seconds)
        self.notifications = self.notifications or NotificationChannel(
            capacity=self.config.notification_capacity,
            default_duration_seconds=self.config.notification_duration_seconds,
        )
        self.preferences = self.preferences or PreferenceStore()
        self.coordinator = MutationCoordinator(
            cache=self.cache,
            record_store=self.record_store,
            notifications=self.notifications,
            large_quantity_threshold=self.config.large_quantity_threshold,
            timeout_seconds=self.config.mutation_timeout_seconds,
        )

    def products_query(self) -> QueryHandle:
        return QueryHandle(
            cache=self.cache,
            key=all_products_key(),
            loader=self.record_store.get_all_products,
            retries=self.config.fetch_retries,
            retry_backoff_seconds=self.config.retry_backoff_seconds,
        )

    def product_query(self, barcode: str) -> QueryHandle:
        # "Not found" is a valid answer, so lookups are never retried.
        async def load() -> Product | None:
            return await self.record_store.get_product_by_barcode(barcode)

        return QueryHandle(cache=self.cache, key=product_key(barcode), loader=load)

    def history_query(self, product_id: str) -> QueryHandle:
        async def load():
            return await self.record_store.get_stock_movements(product_id)

        return QueryHandle(
            cache=self.cache,
            key=history_key(product_id),
            loader=load,
            retries=self.config.fetch_retries,
            retry_backoff_seconds=self.config.retry_backoff_seconds,
        )

    def inventory_list(self) -> InventoryListView:
        return InventoryListView(query=self.products_query())

    def stock_trigger(self, product: Product) -> StockMutationTrigger:
        return StockMutationTrigger(coordinator=self.coordinator, product=product)

    def recent_products(self) -> RecentProducts:
        return RecentProducts(store=self.preferences)

    def close(self) -> None:
        self.notifications.close()
        self.cache.clear()
