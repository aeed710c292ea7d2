"""
Balance Ledger: loyalty points and e-wallet movements

WHY: Customer balances are shared counters touched by concurrent orders.
Every movement here reads the customer row under lock and writes it back
in the caller's transaction, so two orders can never both spend the same
balance.

RULES:
- Balances never go negative: debits are floored at zero and return the
  amount actually taken.
- Customers are always looked up within the shop that owns them.
- Nothing here commits; the caller's unit of work does.
- Points are earned at floor(total) per completed non-pending order and
  taken back at floor(total or refund amount) on reversal.
"""

from __future__ import annotations

import math
from decimal import Decimal

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer
from ..money import ZERO, quantize_money, to_decimal
from .concurrency import lock_for_update


def get_customer_for_update(customer_id: int, shop_id: int) -> Customer:
    customer = lock_for_update(
        db.session.query(Customer).filter_by(id=customer_id, shop_id=shop_id)
    ).first()
    if not customer:
        raise NotFoundError("Invalid customer ID or unauthorized", details={"customer_id": customer_id})
    return customer


def _check_points(points: int) -> int:
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        raise ValidationError("points must be a non-negative integer")
    return points


def _check_amount(amount) -> Decimal:
    value = quantize_money(to_decimal(amount))
    if value < ZERO:
        raise ValidationError("amount must be non-negative")
    return value


def debit_loyalty_points(customer_id: int, points: int, *, shop_id: int) -> int:
    """Take up to `points` from the customer. Returns the points actually taken."""
    points = _check_points(points)
    customer = get_customer_for_update(customer_id, shop_id)
    taken = min(points, customer.loyalty_points or 0)
    customer.loyalty_points = (customer.loyalty_points or 0) - taken
    return taken


def credit_loyalty_points(customer_id: int, points: int, *, shop_id: int) -> int:
    points = _check_points(points)
    customer = get_customer_for_update(customer_id, shop_id)
    customer.loyalty_points = (customer.loyalty_points or 0) + points
    return points


def debit_wallet(customer_id: int, amount, *, shop_id: int) -> Decimal:
    """Take up to `amount` from the e-wallet. Returns the amount actually taken."""
    amount = _check_amount(amount)
    customer = get_customer_for_update(customer_id, shop_id)
    balance = Decimal(customer.ewallet_balance or 0)
    taken = min(amount, balance)
    customer.ewallet_balance = quantize_money(balance - taken)
    return taken


def credit_wallet(customer_id: int, amount, *, shop_id: int) -> Decimal:
    amount = _check_amount(amount)
    customer = get_customer_for_update(customer_id, shop_id)
    customer.ewallet_balance = quantize_money(Decimal(customer.ewallet_balance or 0) + amount)
    return amount


def points_for_amount(amount) -> int:
    """Whole points for a currency amount: floor(amount), never negative."""
    value = to_decimal(amount)
    if value <= ZERO:
        return 0
    return int(math.floor(value))


def award_points_for_order(customer_id: int, total, *, shop_id: int) -> int:
    return credit_loyalty_points(customer_id, points_for_amount(total), shop_id=shop_id)


def deduct_points_for_reversal(customer_id: int, amount, *, shop_id: int) -> int:
    """
    Take back floor(amount) points, floored at the current balance.

    Points already spent elsewhere are not clawed back below zero.
    """
    return debit_loyalty_points(customer_id, points_for_amount(amount), shop_id=shop_id)
