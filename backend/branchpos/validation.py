"""
Request payload parsing for order routes.

JSON bodies and query strings are coerced into the typed requests the order
services take. Anything malformed raises ValidationError before a service
is called.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from .errors import ValidationError
from .money import ZERO, to_decimal
from .models.orders import ORDER_STATUS_COMPLETED
from .services.order_service import CreateOrderRequest, OrderLineRequest, PaymentRequest
from .time_utils import parse_date_bound, parse_iso_datetime


def parse_int(value: Any, field: str, *, required: bool = False) -> int | None:
    """
    Strict integer coercion.

    Accepts ints and digit strings; rejects bools, floats with a fraction
    and anything else.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def parse_bool(value: Any, field: str, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "false", "0"):
        return value.strip().lower() in ("true", "1")
    raise ValidationError(f"{field} must be a boolean")


def _parse_decimal(value: Any, field: str, default: Decimal = ZERO) -> Decimal:
    if value is None or value == "":
        return default
    return to_decimal(value, field)


def _parse_item(raw: Any, index: int) -> OrderLineRequest:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"items[{index}] must be an object")

    # Clients send the catalog row itself, so "id" is the product id
    product_id = parse_int(raw.get("id", raw.get("product_id")), f"items[{index}].id", required=True)
    quantity = parse_int(raw.get("quantity"), f"items[{index}].quantity", required=True)

    if raw.get("price") is None:
        raise ValidationError(f"items[{index}].price is required")

    tax_rates = raw.get("tax_rates") or []
    if not isinstance(tax_rates, list):
        raise ValidationError(f"items[{index}].tax_rates must be an array")

    note = raw.get("customer_note")
    return OrderLineRequest(
        product_id=product_id,
        quantity=quantity,
        unit_price=to_decimal(raw.get("price"), f"items[{index}].price"),
        discount_percent=_parse_decimal(raw.get("discount"), f"items[{index}].discount"),
        tax_rate_percents=tuple(to_decimal(rate, f"items[{index}].tax_rates") for rate in tax_rates),
        customer_note=str(note) if note else None,
    )


def _parse_payment(raw: Any, index: int) -> PaymentRequest:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"payment_methods[{index}] must be an object")
    return PaymentRequest(
        payment_method_id=parse_int(
            raw.get("payment_method_id"), f"payment_methods[{index}].payment_method_id", required=True
        ),
        amount=_parse_decimal(raw.get("amount"), f"payment_methods[{index}].amount"),
    )


def parse_create_order(data: Mapping[str, Any] | None) -> CreateOrderRequest:
    if not isinstance(data, Mapping):
        raise ValidationError("Request body must be a JSON object")

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Items are required and must be a non-empty array")

    payments = data.get("payment_methods") or []
    if not isinstance(payments, list):
        raise ValidationError("payment_methods must be an array")

    tax_total = data.get("tax_total")
    pickup_time = data.get("pickup_time")
    try:
        pickup = parse_iso_datetime(pickup_time) if pickup_time else None
    except (TypeError, ValueError):
        raise ValidationError("pickup_time must be an ISO-8601 datetime")

    currency_id = parse_int(data.get("currency_id"), "currency_id")

    return CreateOrderRequest(
        items=tuple(_parse_item(raw, i) for i, raw in enumerate(items)),
        store_id=parse_int(data.get("store_id"), "store_id"),
        branch_id=parse_int(data.get("branch_id"), "branch_id"),
        customer_id=parse_int(data.get("customer_id"), "customer_id"),
        discount_percent=_parse_decimal(data.get("discount"), "discount"),
        payments=tuple(_parse_payment(raw, i) for i, raw in enumerate(payments)),
        currency_id=currency_id if currency_id is not None else 1,
        use_loyalty_points=parse_int(data.get("use_loyalty_points"), "use_loyalty_points") or 0,
        ewallet_amount=_parse_decimal(data.get("ewallet_amount"), "ewallet_amount"),
        is_online=parse_bool(data.get("is_online"), "is_online"),
        pickup_time=pickup,
        status=data.get("status") or ORDER_STATUS_COMPLETED,
        tax_total=to_decimal(tax_total, "tax_total") if tax_total not in (None, "") else None,
    )


def parse_date_filter(value: str | None, field: str, *, end: bool = False):
    if not value:
        return None
    try:
        return parse_date_bound(value, end=end)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
