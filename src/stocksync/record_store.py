from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from .exceptions import NetworkError, NotFoundError
from .http_client import HttpClient, Payload
from .logger import get_logger, log_action
from .models import Direction, Product, StockMovement
from .validation import validate_direction, validate_product_id, validate_quantity

_log = get_logger(__name__)


class RecordStore(Protocol):
    async def get_all_products(self) -> list[Product]: ...

    async def get_product_by_barcode(self, barcode: str) -> Product | None: ...

    async def get_stock_movements(self, product_id: str) -> list[StockMovement]: ...

    async def add_stock_movement(self, product_id: str, quantity: int, direction: Direction) -> StockMovement: ...


@dataclass
class HttpRecordStore:
    """Record store reached over REST.

    ``requests`` is blocking, so every call runs in a worker thread and the
    event loop stays free for other fetches and mutations.
    """

    http: HttpClient
    movements_limit: int = 10

    async def get_all_products(self) -> list[Product]:
        payload = await asyncio.to_thread(self.http.request, "GET", "/products")
        return [_parse(Product, row) for row in _items(payload, "products")]

    async def get_product_by_barcode(self, barcode: str) -> Product | None:
        try:
            payload = await asyncio.to_thread(
                self.http.request,
                "GET",
                "/products",
                params={"barcode": barcode, "limit": 1},
            )
        except NotFoundError:
            return None
        rows = _items(payload, "products")
        if not rows:
            log_action(_log, "record_store", "lookup", "not_found", barcode=barcode)
            return None
        return _parse(Product, rows[0])

    async def get_stock_movements(self, product_id: str) -> list[StockMovement]:
        payload = await asyncio.to_thread(
            self.http.request,
            "GET",
            f"/products/{product_id}/movements",
            params={"limit": self.movements_limit, "sort": "-timestamp"},
        )
        movements = [_parse(StockMovement, row) for row in _items(payload, "movements")]
        return sorted(movements, key=lambda movement: movement.timestamp, reverse=True)

    async def add_stock_movement(self, product_id: str, quantity: int, direction: Direction) -> StockMovement:
        product_id = validate_product_id(product_id)
        magnitude = validate_quantity(quantity)
        direction = validate_direction(direction)
        body = {
            "product_id": product_id,
            "direction": direction.value,
            "quantity": direction.sign(magnitude),
        }
        payload = await asyncio.to_thread(
            self.http.request,
            "POST",
            "/stock-movements",
            json_body=body,
            headers={"Idempotency-Key": str(uuid.uuid4())},
        )
        if not isinstance(payload, dict):
            raise NetworkError(code="INVALID_RESPONSE", message="Expected stock movement response to be a JSON object")
        return _parse(StockMovement, payload)


def _items(payload: Payload, label: str) -> list[dict[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    if not isinstance(payload, list):
        raise NetworkError(code="INVALID_RESPONSE", message=f"Expected {label} response to be a list")
    return [row for row in payload if isinstance(row, dict)]


def _parse(model_type: type, row: dict[str, Any]) -> Any:
    try:
        return model_type.model_validate(row)
    except PydanticValidationError as exc:
        raise NetworkError(
            code="INVALID_RESPONSE",
            message=f"Malformed {model_type.__name__} record from record store",
            details=exc.errors(include_url=False),
        ) from exc
