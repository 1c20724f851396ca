from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError
from .models.inventory import LOCATIONS


# Quantities carry two decimal places (litres, kilograms, units).
QUANTITY_EXPONENT = Decimal("0.01")

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def parse_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> Decimal:
    """
    Coerce a client-supplied quantity to a Decimal with two places.

    Accepts int, float, str and Decimal. Rejects bools, NaN/Infinity,
    negatives, zero (unless allow_zero) and values with more precision than
    the unit of measure supports.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    try:
        # str() first so floats like 0.1 are read as written, not as binary
        qty = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")

    if not qty.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    if qty != qty.quantize(QUANTITY_EXPONENT):
        raise ValidationError(f"{field} allows at most two decimal places")

    if qty < 0:
        raise ValidationError(f"{field} must not be negative")
    if qty == 0 and not allow_zero:
        raise ValidationError(f"{field} must be positive")

    return qty.quantize(QUANTITY_EXPONENT)


def parse_cents(value: Any, field: str = "unit_price_cents") -> int:
    """Money arrives as integer cents; strings of plain digits are accepted."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        cents = value
    elif isinstance(value, str) and value.strip().isdigit():
        cents = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer number of cents")

    if cents < 0:
        raise ValidationError(f"{field} must not be negative")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed value")
    return cents


def parse_location(value: Any, field: str = "location") -> str:
    if value not in LOCATIONS:
        raise ValidationError(
            f"{field} must be one of: {', '.join(LOCATIONS)}",
            details={"field": field, "value": value},
        )
    return value


def parse_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer id")


def optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    """Empty strings become None, as the portal stores them."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if not value:
        return None
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def required_text(value: Any, field: str, max_length: int | None = None) -> str:
    text = optional_text(value, field, max_length)
    if text is None:
        raise ValidationError(f"{field} is required")
    return text


def line_total_cents(quantity: Decimal, unit_price_cents: int) -> int:
    """quantity * unit price, rounded half-up to whole cents."""
    return int((quantity * unit_price_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_line_items(items: Any, *, require_price: bool = True) -> list[dict]:
    """
    Normalize a list of {"product_id", "quantity", "unit_price_cents"} lines.

    Returns dicts with parsed values plus total_price_cents. Lines for the
    same product are kept separate; callers that deduct stock aggregate per
    product themselves.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = parse_id(raw.get("product_id"), f"items[{index}].product_id")
        quantity = parse_quantity(raw.get("quantity"), f"items[{index}].quantity")
        line = {"product_id": product_id, "quantity": quantity}
        if require_price:
            unit_price_cents = parse_cents(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents")
            line["unit_price_cents"] = unit_price_cents
            line["total_price_cents"] = line_total_cents(quantity, unit_price_cents)
        lines.append(line)
    return lines
