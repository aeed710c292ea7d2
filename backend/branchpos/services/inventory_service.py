# Overview: Inventory guard for orders; validates requested lines against the catalog and moves stock.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from ..errors import InsufficientStock, PriceMismatch, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Product
from ..money import quantize_money
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)

CONSUME = "consume"
RESTORE = "restore"


@dataclass(frozen=True)
class StockLine:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None


def _requested_totals(lines: Iterable[StockLine]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def validate_stock(
    lines: Sequence[StockLine],
    shop_id: int,
    *,
    check_availability: bool = True,
) -> dict[int, Product]:
    """
    Check submitted lines against the current catalog rows of the shop.

    Raises on the first violation, in submission order:
    - ProductNotFound: product missing or owned by another shop
    - InsufficientStock: stock below the quantity requested across all lines
    - PriceMismatch: catalog price differs from the submitted price at cents precision

    With check_availability=False only existence is checked (pending orders).
    The product rows are locked for the rest of the caller's transaction.
    """
    product_ids = sorted({line.product_id for line in lines})
    products = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(product_ids), Product.shop_id == shop_id)
    ).all()
    by_id = {p.id: p for p in products}
    requested = _requested_totals(lines)

    for line in lines:
        product = by_id.get(line.product_id)
        if not product:
            raise ProductNotFound(
                f"Product ID {line.product_id} not found or unauthorized",
                details={"product_id": line.product_id},
            )
        if not check_availability:
            continue
        if product.stock < requested[line.product_id]:
            raise InsufficientStock(
                f"Insufficient stock for product ID {line.product_id}",
                details={
                    "product_id": line.product_id,
                    "requested_quantity": requested[line.product_id],
                    "stock": product.stock,
                },
            )
        if line.unit_price is not None and quantize_money(Decimal(product.price)) != quantize_money(line.unit_price):
            raise PriceMismatch(
                f"Price mismatch for product ID {line.product_id}",
                details={
                    "product_id": line.product_id,
                    "submitted_price": float(quantize_money(line.unit_price)),
                    "catalog_price": float(quantize_money(Decimal(product.price))),
                },
            )

    return by_id


def apply_stock(lines: Iterable[StockLine], direction: str) -> int:
    """
    Move stock for each line inside the caller's transaction.

    CONSUME decrements, RESTORE increments. A consume that would take a
    product below zero raises InsufficientStock, which rolls back the whole
    operation. Returns the total quantity moved.
    """
    if direction not in (CONSUME, RESTORE):
        raise ValidationError(f"Unknown stock direction: {direction}")

    moved = 0
    for line in lines:
        query = db.session.query(Product).filter(Product.id == line.product_id)
        if direction == CONSUME:
            updated = query.filter(Product.stock >= line.quantity).update(
                {Product.stock: Product.stock - line.quantity},
                synchronize_session="fetch",
            )
            if updated == 0:
                raise InsufficientStock(
                    f"Insufficient stock for product ID {line.product_id}",
                    details={"product_id": line.product_id, "requested_quantity": line.quantity},
                )
        else:
            updated = query.update(
                {Product.stock: Product.stock + line.quantity},
                synchronize_session="fetch",
            )
            if updated == 0:
                # Catalog row is gone; nothing left to restore into
                logger.warning("Stock restore skipped for missing product %s", line.product_id)
                continue
        moved += line.quantity

    return moved
