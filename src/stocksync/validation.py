from __future__ import annotations

import math
from numbers import Integral, Real

from .exceptions import ValidationError, ValidationIssue
from .models import Direction


def validate_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, Real):
        _raise_issue("quantity", f"quantity must be a positive integer, got {quantity!r}")
    if isinstance(quantity, Integral):
        value = int(quantity)
    else:
        as_float = float(quantity)
        if not math.isfinite(as_float) or not as_float.is_integer():
            _raise_issue("quantity", f"quantity must be a positive integer, got {quantity!r}")
        value = int(as_float)
    if value <= 0:
        _raise_issue("quantity", f"quantity must be a positive integer, got {quantity!r}")
    return value


def validate_direction(direction: Direction | str) -> Direction:
    try:
        return Direction(direction)
    except ValueError:
        _raise_issue("direction", f"direction must be 'IN' or 'OUT', got {direction!r}")
        raise


def validate_product_id(product_id: str) -> str:
    if not product_id or not product_id.strip():
        _raise_issue("product_id", "product id is required and cannot be empty")
    return product_id.strip()


def requires_confirmation(quantity: int, threshold: int) -> bool:
    return quantity > threshold


def _raise_issue(field: str, reason: str) -> None:
    raise ValidationError([ValidationIssue(field=field, reason=reason)])
