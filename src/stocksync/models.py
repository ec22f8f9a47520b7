from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PENDING_ID_PREFIX = "pending-"


class Direction(str, Enum):
    IN = "IN"
    OUT = "OUT"

    def sign(self, quantity: int) -> int:
        magnitude = abs(quantity)
        return -magnitude if self is Direction.OUT else magnitude


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str
    barcode: str | None = None
    category: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    current_stock: int | float | None = None
    min_stock: int | float | None = None
    ideal_stock: int | float | None = None
    supplier: str | None = None
    image_url: str | None = None

    @field_validator("barcode", "category", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def stock_level(self) -> float:
        return finite_or_zero(self.current_stock)

    @property
    def min_stock_level(self) -> float:
        return finite_or_zero(self.min_stock)


class StockMovement(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    product_id: str
    direction: Direction
    quantity: int
    timestamp: datetime
    pending: bool = False

    @model_validator(mode="after")
    def ensure_signed_quantity(self):
        if self.quantity == 0:
            raise ValueError("quantity cannot be zero")
        if self.quantity != self.direction.sign(self.quantity):
            raise ValueError(f"quantity {self.quantity} does not match direction {self.direction.value}")
        return self

    @classmethod
    def synthetic(cls, product_id: str, quantity: int, direction: Direction) -> StockMovement:
        return cls(
            id=f"{PENDING_ID_PREFIX}{uuid.uuid4()}",
            product_id=product_id,
            direction=direction,
            quantity=direction.sign(quantity),
            timestamp=datetime.now(timezone.utc),
            pending=True,
        )


def finite_or_zero(value: float | Decimal | None) -> float | Decimal:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        return value if value.is_finite() else 0
    try:
        return value if math.isfinite(value) else 0
    except TypeError:
        return 0


def optimistic_stock_level(product: Product, history: list[StockMovement] | None) -> float:
    """Confirmed stock plus any speculative movements not yet settled."""
    pending = sum(movement.quantity for movement in history or [] if movement.pending)
    return product.stock_level + pending
