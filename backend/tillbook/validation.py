# Overview: Request payload coercion helpers shared by the API routes.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError

CENT = Decimal("0.01")

# Maximum money amount accepted on input; keeps values inside Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")

# Largest integer SQLite can store (signed 64-bit)
MAX_INT64 = 2**63 - 1

# Upper bound for line quantities and denomination counts
MAX_QUANTITY = 1_000_000


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def require_json(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def parse_int(
    value: Any,
    field: str,
    *,
    minimum: int | None = None,
    maximum: int = MAX_INT64,
) -> int:
    """
    Strict integer coercion: rejects floats, decimals, booleans and
    scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if result > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return result


def parse_money(value: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    """Coerce a JSON number or numeric string into a 2dp Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() first so floats like 4.5 become Decimal("4.5"), not the binary value
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return quantize_money(amount)


def optional_str(payload: dict, field: str, *, max_length: int = 255) -> str | None:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def parse_line_items(items: Any, *, skip_non_positive: bool = False) -> list[dict]:
    """
    Validate a list of {id, quantity, price?} line payloads.

    Returns plain dicts {product_id, quantity, unit_price (Decimal | None)}.
    With skip_non_positive, lines with quantity <= 0 are dropped instead of
    rejected (storefront quote carts).
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")

        product_id = item.get("id", item.get("product_id"))
        if product_id is None:
            raise ValidationError(f"items[{index}].id is required")
        product_id = parse_int(product_id, f"items[{index}].id", minimum=1)

        quantity = parse_int(
            item.get("quantity"), f"items[{index}].quantity", maximum=MAX_QUANTITY
        )
        if quantity <= 0:
            if skip_non_positive:
                continue
            raise ValidationError(f"items[{index}].quantity must be at least 1")

        price = item.get("price")
        unit_price = None if price is None else parse_money(price, f"items[{index}].price")
        if unit_price is not None and unit_price * quantity > MAX_AMOUNT:
            raise ValidationError(f"items[{index}] line total is too large")

        parsed.append({"product_id": product_id, "quantity": quantity, "unit_price": unit_price})

    if not parsed:
        raise ValidationError("items must contain at least one line with a positive quantity")
    return parsed
