"""
Pricing & Totals Calculator

Pure computation: no database access and no side effects. The order
coordinator feeds it the submitted line items plus the balances it read
inside its own transaction, then applies the returned redemptions itself.

ALGORITHM:
1. subtotal  = sum(price * qty * (1 - item_discount/100)) * exchange_rate
2. tax_total = explicit override when non-zero, otherwise
               sum over items of sum over the item's rates (price * qty * rate/100).
               Tax uses the pre-discount, pre-exchange-rate price.
3. total     = (subtotal + tax_total) * (1 - order_discount/100)
4. points    = min(requested, available, total * 100); total -= points * 0.01
5. wallet    = min(requested, available, total);       total -= wallet
6. Everything is rounded to cents (ROUND_HALF_UP).

subtotal, tax_total and the step-3 total are rounded before the
redemptions are taken, so the stored values always satisfy
total == (subtotal + tax_total) * (1 - discount/100) - points * 0.01 - wallet
to the cent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, Sequence

from ..money import HUNDRED, ZERO, quantize_money


# Loyalty points redeem at a fixed 100 points per currency unit
POINT_VALUE = Decimal("0.01")


@dataclass(frozen=True)
class PricedItem:
    product_id: int
    unit_price: Decimal
    quantity: int
    discount_percent: Decimal = ZERO
    tax_rate_percents: tuple[Decimal, ...] = field(default_factory=tuple)

    @property
    def gross(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_total: Decimal
    total: Decimal
    points_used: int = 0
    wallet_used: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax_total": float(self.tax_total),
            "total": float(self.total),
            "points_used": self.points_used,
            "wallet_used": float(self.wallet_used),
        }


def calculate_subtotal(items: Iterable[PricedItem], exchange_rate: Decimal = Decimal("1")) -> Decimal:
    subtotal = sum(
        (item.gross * (1 - item.discount_percent / HUNDRED) for item in items),
        ZERO,
    )
    return quantize_money(subtotal * exchange_rate)


def calculate_tax_total(items: Iterable[PricedItem]) -> Decimal:
    tax = sum(
        (item.gross * rate / HUNDRED for item in items for rate in item.tax_rate_percents),
        ZERO,
    )
    return quantize_money(tax)


def max_redeemable_points(total: Decimal) -> int:
    """Points needed to cover the whole total (a point is worth one cent)."""
    if total <= ZERO:
        return 0
    return int((total / POINT_VALUE).to_integral_value(rounding=ROUND_FLOOR))


def calculate_totals(
    items: Sequence[PricedItem],
    *,
    discount_percent: Decimal = ZERO,
    exchange_rate: Decimal | None = None,
    tax_total_override: Decimal | None = None,
    points_requested: int = 0,
    points_available: int = 0,
    wallet_requested: Decimal = ZERO,
    wallet_available: Decimal = ZERO,
    apply_redemptions: bool = True,
) -> Totals:
    """
    Compute order totals.

    apply_redemptions is False for pending orders: no points or wallet
    balance is taken before the order is validated for fulfillment.
    """
    if exchange_rate is None:
        exchange_rate = Decimal("1")

    subtotal = calculate_subtotal(items, exchange_rate)

    if tax_total_override:
        tax_total = quantize_money(tax_total_override)
    else:
        tax_total = calculate_tax_total(items)

    total = quantize_money((subtotal + tax_total) * (1 - discount_percent / HUNDRED))

    points_used = 0
    wallet_used = ZERO
    if apply_redemptions:
        if points_requested > 0:
            points_used = max(0, min(points_requested, points_available, max_redeemable_points(total)))
            total -= points_used * POINT_VALUE

        if wallet_requested > ZERO:
            wallet_used = quantize_money(max(ZERO, min(wallet_requested, wallet_available, total)))
            total -= wallet_used

    return Totals(
        subtotal=subtotal,
        tax_total=tax_total,
        total=quantize_money(total),
        points_used=points_used,
        wallet_used=wallet_used,
    )
