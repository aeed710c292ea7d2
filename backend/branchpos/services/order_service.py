"""
Order Transaction Coordinator: create path

WHY: Creating an order touches shared counters (product stock, customer
points and wallet) and several tables at once. The whole path runs as one
unit of work so a rejected request never leaves partial state behind, and
the unit of work is retried as a whole on lock-wait conflicts.

FLOW (one transaction):
1. Resolve the store inside the caller's scope; the order's branch is the store's branch
2. Non-pending orders: validate stock and prices (first violation wins)
3. Resolve the currency exchange rate
4. Price the order (redemptions only for non-pending orders with a customer)
5. Debit redeemed points and wallet from balances read in this transaction
6. Check that payments plus wallet cover the total
7. Insert order, audit-log and status-log rows
8. Insert items; non-pending orders consume stock
9. Non-pending orders: insert payments
10. Non-pending orders with a customer: award floor(total) loyalty points
11. Commit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ..errors import BusinessRuleViolation, InsufficientPayment, NotFoundError, ValidationError
from ..extensions import db
from ..models import Currency, Order, OrderItem, OrderPayment, PaymentMethod
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_PREPARING,
)
from ..money import HUNDRED, ZERO, money_to_float, quantize_money
from . import audit_service, balance_service, inventory_service, pricing_service
from .concurrency import run_with_retry, unit_of_work
from .scope_service import (
    OrderScope,
    Principal,
    require_branch_access,
    require_store_in_scope,
    resolve_scope,
)


logger = logging.getLogger(__name__)

# Orders may be captured in any live status; cancelled is reached only by transition
CREATABLE_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_COMPLETED,
)


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: int
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = ZERO
    tax_rate_percents: tuple[Decimal, ...] = ()
    customer_note: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    payment_method_id: int
    amount: Decimal


@dataclass(frozen=True)
class CreateOrderRequest:
    items: tuple[OrderLineRequest, ...]
    store_id: int | None
    branch_id: int | None = None
    customer_id: int | None = None
    discount_percent: Decimal = ZERO
    payments: tuple[PaymentRequest, ...] = field(default_factory=tuple)
    currency_id: int = 1
    use_loyalty_points: int = 0
    ewallet_amount: Decimal = ZERO
    is_online: bool = False
    pickup_time: datetime | None = None
    status: str = ORDER_STATUS_COMPLETED
    tax_total: Decimal | None = None


@dataclass(frozen=True)
class CreatedOrder:
    id: int
    tax_total: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tax_total": money_to_float(self.tax_total),
            "total": money_to_float(self.total),
        }


def _check_percent(value: Decimal, field_name: str) -> None:
    if value < ZERO or value > HUNDRED:
        raise ValidationError(f"{field_name} must be between 0 and 100")


def validate_create_request(request: CreateOrderRequest) -> None:
    """
    Reject malformed create requests before any transaction is opened.

    Business rules that need database state (stock, price, scope, payment
    coverage) are checked inside the unit of work instead.
    """
    if not request.items:
        raise ValidationError("Items are required and must be a non-empty array")
    if not request.store_id:
        raise ValidationError("Store ID is required")
    if request.status not in CREATABLE_STATUSES:
        raise ValidationError(
            f"Invalid order status: {request.status}",
            details={"allowed": list(CREATABLE_STATUSES)},
        )

    _check_percent(request.discount_percent, "discount")
    if request.use_loyalty_points < 0:
        raise ValidationError("use_loyalty_points must be non-negative")
    if request.ewallet_amount < ZERO:
        raise ValidationError("ewallet_amount must be non-negative")
    if request.tax_total is not None and request.tax_total < ZERO:
        raise ValidationError("tax_total must be non-negative")

    for line in request.items:
        if line.quantity <= 0:
            raise ValidationError(
                f"Quantity for product ID {line.product_id} must be positive",
                details={"product_id": line.product_id},
            )
        if line.unit_price < ZERO:
            raise ValidationError(
                f"Price for product ID {line.product_id} must be non-negative",
                details={"product_id": line.product_id},
            )
        _check_percent(line.discount_percent, "item discount")
        if any(rate < ZERO for rate in line.tax_rate_percents):
            raise ValidationError("tax_rates must be non-negative")

    for payment in request.payments:
        if payment.amount < ZERO:
            raise ValidationError("Payment amounts must be non-negative")


def _resolve_exchange_rate(currency_id: int) -> Decimal:
    currency = db.session.get(Currency, currency_id)
    if not currency:
        raise NotFoundError("Invalid currency ID", details={"currency_id": currency_id})
    # Unset (or zero) rate means the shop's base currency
    return Decimal(currency.exchange_rate) if currency.exchange_rate else Decimal("1")


def _require_payment_methods(payments: tuple[PaymentRequest, ...]) -> None:
    method_ids = {p.payment_method_id for p in payments}
    if not method_ids:
        return
    found = {
        row.id
        for row in db.session.query(PaymentMethod.id)
        .filter(PaymentMethod.id.in_(method_ids), PaymentMethod.is_active.is_(True))
        .all()
    }
    missing = sorted(method_ids - found)
    if missing:
        raise NotFoundError("Invalid payment method ID", details={"payment_method_ids": missing})


def _create_order_locked(principal: Principal, scope: OrderScope, request: CreateOrderRequest) -> CreatedOrder:
    store = require_store_in_scope(scope, request.store_id)
    if request.branch_id is not None and request.branch_id != store.branch_id:
        raise BusinessRuleViolation(
            "Store does not belong to the requested branch",
            details={"store_id": store.id, "branch_id": request.branch_id},
        )
    branch_id = store.branch_id

    fulfilling = request.status != ORDER_STATUS_PENDING
    stock_lines = [
        inventory_service.StockLine(line.product_id, line.quantity, line.unit_price)
        for line in request.items
    ]
    inventory_service.validate_stock(stock_lines, scope.shop_id, check_availability=fulfilling)

    exchange_rate = _resolve_exchange_rate(request.currency_id)

    customer = None
    if request.customer_id:
        customer = balance_service.get_customer_for_update(request.customer_id, scope.shop_id)

    totals = pricing_service.calculate_totals(
        [
            pricing_service.PricedItem(
                product_id=line.product_id,
                unit_price=line.unit_price,
                quantity=line.quantity,
                discount_percent=line.discount_percent,
                tax_rate_percents=line.tax_rate_percents,
            )
            for line in request.items
        ],
        discount_percent=request.discount_percent,
        exchange_rate=exchange_rate,
        tax_total_override=request.tax_total,
        points_requested=request.use_loyalty_points,
        points_available=customer.loyalty_points if customer else 0,
        wallet_requested=request.ewallet_amount,
        wallet_available=Decimal(customer.ewallet_balance) if customer else ZERO,
        apply_redemptions=fulfilling and customer is not None,
    )

    if customer is not None:
        if totals.points_used:
            balance_service.debit_loyalty_points(customer.id, totals.points_used, shop_id=scope.shop_id)
        if totals.wallet_used:
            balance_service.debit_wallet(customer.id, totals.wallet_used, shop_id=scope.shop_id)

    if fulfilling:
        _require_payment_methods(request.payments)
        paid = quantize_money(sum((p.amount for p in request.payments), ZERO))
        if paid + totals.wallet_used < totals.total:
            raise InsufficientPayment(
                "Payment amounts do not cover total",
                details={
                    "total": money_to_float(totals.total),
                    "paid": money_to_float(paid),
                    "wallet_used": money_to_float(totals.wallet_used),
                },
            )

    order = Order(
        branch_id=branch_id,
        store_id=store.id,
        customer_id=customer.id if customer else None,
        currency_id=request.currency_id,
        total=totals.total,
        discount=request.discount_percent,
        tax_total=totals.tax_total,
        status=request.status,
        is_online=request.is_online,
        pickup_time=request.pickup_time,
        points_used=totals.points_used,
        ewallet_used=totals.wallet_used,
        fulfillment_applied=fulfilling,
    )
    db.session.add(order)
    db.session.flush()

    audit_service.record_audit(
        user_id=principal.user_id,
        shop_id=scope.shop_id,
        entity_id=order.id,
        action="create",
        details={
            "total": money_to_float(totals.total),
            "customer_id": order.customer_id,
            "discount": float(request.discount_percent),
            "currency_id": request.currency_id,
            "store_id": store.id,
            "branch_id": branch_id,
            "status": request.status,
            "is_online": request.is_online,
        },
    )
    audit_service.log_status_change(order.id, request.status, principal.user_id)

    for line in request.items:
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=line.product_id,
            quantity=line.quantity,
            discount=line.discount_percent,
            unit_price=quantize_money(line.unit_price),
            customer_note=line.customer_note,
        ))
    db.session.flush()

    if fulfilling:
        inventory_service.apply_stock(stock_lines, inventory_service.CONSUME)

        for payment in request.payments:
            db.session.add(OrderPayment(
                order_id=order.id,
                payment_method_id=payment.payment_method_id,
                amount=quantize_money(payment.amount),
            ))

        if customer is not None:
            balance_service.award_points_for_order(customer.id, totals.total, shop_id=scope.shop_id)

    db.session.flush()
    return CreatedOrder(id=order.id, tax_total=totals.tax_total, total=totals.total)


def create_order(principal: Principal, request: CreateOrderRequest) -> CreatedOrder:
    """
    Create an order and apply its stock, balance and audit effects atomically.

    Raises ValidationError before opening a transaction for malformed input.
    Every other failure rolls back the whole unit of work. Lock-wait
    conflicts are retried as a whole; TransientConflict once exhausted.
    """
    validate_create_request(request)
    scope = resolve_scope(principal)
    require_branch_access(scope, request.branch_id)

    def _op() -> CreatedOrder:
        with unit_of_work():
            created = _create_order_locked(principal, scope, request)
        logger.info("Order %s created by user %s (status=%s)", created.id, principal.user_id, request.status)
        return created

    return run_with_retry(_op, label=f"order creation for user {principal.user_id}")
