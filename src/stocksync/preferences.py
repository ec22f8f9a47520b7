from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_data_dir

from .logger import get_logger
from .models import Product

_log = get_logger(__name__)

RECENT_PRODUCTS_KEY = "recent_products"
MAX_RECENT_ITEMS = 8


@dataclass
class PreferenceStore:
    """Small JSON key-value store for operator preferences.

    Storage failures are logged and otherwise ignored.
    """

    app_name: str = "stocksync"
    filename: str = "preferences.json"
    directory: Path | None = None

    def _path(self) -> Path:
        base = self.directory or Path(user_data_dir(self.app_name, "stocksync"))
        return base / self.filename

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        path = self._path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            _log.warning("could not persist preference %s: %s", key, exc)

    def _load(self) -> dict[str, Any]:
        path = self._path()
        try:
            if not path.exists():
                return {}
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _log.warning("could not read preferences from %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}


@dataclass
class RecentProducts:
    store: PreferenceStore
    limit: int = MAX_RECENT_ITEMS

    def ids(self) -> list[str]:
        stored = self.store.get(RECENT_PRODUCTS_KEY, [])
        if not isinstance(stored, list):
            return []
        return [item for item in stored if isinstance(item, str)][: self.limit]

    def add(self, product_id: str) -> list[str]:
        ids = [product_id, *(item for item in self.ids() if item != product_id)][: self.limit]
        self.store.set(RECENT_PRODUCTS_KEY, ids)
        return ids

    def clear(self) -> None:
        self.store.set(RECENT_PRODUCTS_KEY, [])

    def resolve(self, products: Sequence[Product] | None) -> list[Product]:
        by_id = {product.id: product for product in products or []}
        return [by_id[product_id] for product_id in self.ids() if product_id in by_id]
