from .cache import CacheEntry, CacheState, EntityCache, all_products_key, history_key, product_key
from .config import ClientConfig, ConfigError, load_config
from .exceptions import (
    ApiError,
    AuthorizationError,
    NetworkError,
    NotFoundError,
    ValidationError,
    ValidationIssue,
    describe_error,
)
from .inventory_list import InventoryListView
from .models import Direction, Product, StockMovement, optimistic_stock_level
from .mutations import (
    MutationContext,
    MutationCoordinator,
    MutationResult,
    MutationStatus,
    StockMutationTrigger,
)
from .notifications import Notification, NotificationChannel, NotificationLevel
from .preferences import PreferenceStore, RecentProducts
from .projection import (
    InventoryFilters,
    LowStockAlert,
    ProductProjection,
    SortDirection,
    SortField,
    has_active_filters,
    low_stock_alerts,
    project_products,
)
from .queries import QueryHandle, with_retries
from .record_store import HttpRecordStore, RecordStore
from .session import InventorySession

__all__ = [
    "ApiError",
    "AuthorizationError",
    "CacheEntry",
    "CacheState",
    "ClientConfig",
    "ConfigError",
    "Direction",
    "EntityCache",
    "HttpRecordStore",
    "InventoryFilters",
    "InventoryListView",
    "InventorySession",
    "LowStockAlert",
    "MutationContext",
    "MutationCoordinator",
    "MutationResult",
    "MutationStatus",
    "NetworkError",
    "NotFoundError",
    "Notification",
    "NotificationChannel",
    "NotificationLevel",
    "PreferenceStore",
    "Product",
    "ProductProjection",
    "QueryHandle",
    "RecentProducts",
    "RecordStore",
    "SortDirection",
    "SortField",
    "StockMovement",
    "StockMutationTrigger",
    "ValidationError",
    "ValidationIssue",
    "all_products_key",
    "describe_error",
    "has_active_filters",
    "history_key",
    "load_config",
    "low_stock_alerts",
    "optimistic_stock_level",
    "product_key",
    "project_products",
    "with_retries",
]
