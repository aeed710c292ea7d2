"""
Order Fulfillment State Machine

WHY: After capture an order moves through preparation, pickup, cancellation,
refund and deletion. Each transition has a guard on the current status and
side effects (stock restore, loyalty points clawback, wallet credit, audit
rows) that must land in the same transaction as the status change.

TRANSITIONS:
    pending/preparing        --cancel-->        cancelled
    preparing (online)       --mark prepared--> prepared
    prepared (online)        --pickup-->        completed
    any, not yet refunded    --refund-->        cancelled + is_refunded
    pending/preparing/
    prepared/cancelled       --delete-->        (row removed)
    any                      --status update--> requested status (no side effects)

REVERSALS:
Stock and awarded points are given back only while order.fulfillment_applied
is set, and the flag is cleared in the same transaction. Pending orders never
consumed stock, and an order that was already cancelled is never reversed
twice.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import (
    InvalidTransition,
    NotFoundError,
    RefundExceedsTotal,
    ValidationError,
)
from ..extensions import db
from ..models import Order, Refund
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_DELETED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_PREPARING,
    ORDER_STATUSES,
)
from ..money import ZERO, money_to_float, quantize_money, to_decimal
from . import audit_service, balance_service, inventory_service
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .scope_service import OrderScope, Principal, resolve_scope, scoped_orders


logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_PREPARING)
DELETABLE_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_CANCELLED,
)


def _order_query(scope: OrderScope, order_id: int, *, for_update: bool = True):
    query = scoped_orders(scope).filter(Order.id == order_id)
    if for_update:
        # The scope join pulls in branches; only the order row is locked.
        query = lock_for_update(query, of=Order)
    return query


def _load_order(scope: OrderScope, order_id: int, *, for_update: bool = True) -> Order:
    order = _order_query(scope, order_id, for_update=for_update).first()
    if not order:
        raise NotFoundError("Order not found or unauthorized", details={"order_id": order_id})
    return order


def _set_status(order: Order, status: str, principal: Principal, scope: OrderScope,
                action: str, details: dict) -> None:
    order.status = status
    audit_service.log_status_change(order.id, status, principal.user_id)
    audit_service.record_audit(
        user_id=principal.user_id,
        shop_id=scope.shop_id,
        entity_id=order.id,
        action=action,
        details=details,
    )


def _reverse_fulfillment(order: Order, scope: OrderScope, points_basis: Decimal) -> None:
    """Restore consumed stock and take back floor(points_basis) awarded points."""
    if not order.fulfillment_applied:
        return

    inventory_service.apply_stock(
        [inventory_service.StockLine(item.product_id, item.quantity) for item in order.items],
        inventory_service.RESTORE,
    )
    if order.customer_id:
        balance_service.deduct_points_for_reversal(order.customer_id, points_basis, shop_id=scope.shop_id)
    order.fulfillment_applied = False


def cancel_order(principal: Principal, order_id: int, reason: str | None = None) -> Order:
    """
    Cancel a pending or preparing order.

    When a reason is given, a refund record for the full order total is
    written alongside the cancellation.
    """
    scope = resolve_scope(principal)

    with unit_of_work():
        order = _load_order(scope, order_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(
                f"Order is not eligible for cancellation (current status: {order.status})",
                details={"order_id": order.id, "status": order.status},
            )

        total = Decimal(order.total)
        _set_status(order, ORDER_STATUS_CANCELLED, principal, scope, "cancel", {"reason": reason or None})
        _reverse_fulfillment(order, scope, total)

        # Refund rows carry a positive amount
        if reason and total > ZERO:
            db.session.add(Refund(order_id=order.id, amount=total, reason=reason))

    logger.info("Order %s cancelled by user %s", order_id, principal.user_id)
    return order


def mark_prepared(principal: Principal, order_id: int) -> Order:
    scope = resolve_scope(principal)

    with unit_of_work():
        order = _load_order(scope, order_id)
        if not order.is_online or order.status != ORDER_STATUS_PREPARING:
            raise InvalidTransition(
                f"Order not found or not preparing (status: {order.status})",
                details={"order_id": order.id, "status": order.status, "is_online": bool(order.is_online)},
            )
        _set_status(order, ORDER_STATUS_PREPARED, principal, scope, "status_update", {"status": ORDER_STATUS_PREPARED})

    return order


def pickup_order(principal: Principal, order_id: int) -> Order:
    """
    Complete a prepared online order.

    The order row is locked before its status is checked, and the status
    write is a compare-and-set on 'prepared', so of two concurrent pickups
    exactly one succeeds and the other sees InvalidTransition.
    """
    scope = resolve_scope(principal)

    def _op() -> Order:
        with unit_of_work():
            order = _load_order(scope, order_id, for_update=True)
            if order.status != ORDER_STATUS_PREPARED or not order.is_online:
                raise InvalidTransition(
                    f"Order not eligible for pickup (status: {order.status})",
                    details={"order_id": order.id, "status": order.status},
                )

            updated = (
                db.session.query(Order)
                .filter(Order.id == order.id, Order.status == ORDER_STATUS_PREPARED)
                .update({Order.status: ORDER_STATUS_COMPLETED}, synchronize_session="fetch")
            )
            if updated == 0:
                raise InvalidTransition(
                    "Order not eligible for pickup (status changed)",
                    details={"order_id": order.id},
                )

            audit_service.log_status_change(order.id, ORDER_STATUS_COMPLETED, principal.user_id)
            audit_service.record_audit(
                user_id=principal.user_id,
                shop_id=scope.shop_id,
                entity_id=order.id,
                action="status_update",
                details={"status": ORDER_STATUS_COMPLETED},
            )
        return order

    return run_with_retry(_op, label=f"pickup for order {order_id}")


def refund_order(
    principal: Principal,
    order_id: int,
    amount,
    reason: str | None,
    refund_to_ewallet: bool = False,
) -> Refund:
    """
    Refund an order and cancel it.

    RULES:
    - 0 < amount <= order.total, otherwise nothing is written
    - an order can be refunded once
    - refund_to_ewallet credits the amount to the order's customer, and is
      skipped when the order has none
    - stock comes back and floor(amount) points are taken back if the
      order still holds its fulfillment effects
    """
    if not order_id or not reason:
        raise ValidationError("Order ID, amount, and reason are required")
    value = quantize_money(to_decimal(amount, "amount"))
    if value <= ZERO:
        raise ValidationError("Refund amount must be greater than zero")

    scope = resolve_scope(principal)

    with unit_of_work():
        order = _load_order(scope, order_id)
        if order.is_refunded:
            raise InvalidTransition("Order has already been refunded", details={"order_id": order.id})

        order_total = Decimal(order.total)
        if value > order_total:
            raise RefundExceedsTotal(
                f"Refund amount ({value}) exceeds order total ({quantize_money(order_total)})",
                details={"amount": money_to_float(value), "total": money_to_float(order_total)},
            )

        refund = Refund(order_id=order.id, amount=value, reason=reason, refund_to_ewallet=bool(refund_to_ewallet))
        db.session.add(refund)

        # Walk-in orders have no wallet; the refund still goes through.
        if refund_to_ewallet and order.customer_id:
            balance_service.credit_wallet(order.customer_id, value, shop_id=scope.shop_id)

        order.is_refunded = True
        _set_status(order, ORDER_STATUS_CANCELLED, principal, scope, "refund", {
            "amount": money_to_float(value),
            "reason": reason,
            "refund_to_ewallet": bool(refund_to_ewallet),
        })
        _reverse_fulfillment(order, scope, value)
        db.session.flush()

    logger.info("Order %s refunded %s by user %s", order_id, value, principal.user_id)
    return refund


def delete_order(principal: Principal, order_id: int, reason: str | None = None) -> None:
    """
    Purge an order that never completed.

    The audit rows are written before the delete and survive it; items,
    payments, refunds and status logs go with the order.
    """
    scope = resolve_scope(principal)

    with unit_of_work():
        order = _load_order(scope, order_id)
        if order.status not in DELETABLE_STATUSES:
            raise InvalidTransition(
                f"Order is not eligible for deletion (current status: {order.status})",
                details={"order_id": order.id, "status": order.status},
            )

        _reverse_fulfillment(order, scope, Decimal(order.total))

        audit_service.record_audit(
            user_id=principal.user_id,
            shop_id=scope.shop_id,
            entity_id=order.id,
            action="delete",
            details={
                "reason": reason or None,
                "previous_status": order.status,
                "status": ORDER_STATUS_DELETED,
                "total": money_to_float(order.total),
            },
        )
        if reason:
            audit_service.record_order_audit(order.id, "delete", reason, principal.user_id)

        db.session.delete(order)

    logger.info("Order %s deleted by user %s", order_id, principal.user_id)


def update_order_status(principal: Principal, order_id: int, status: str) -> Order:
    """Administrative status correction: status log and audit log only."""
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}", details={"allowed": list(ORDER_STATUSES)})

    scope = resolve_scope(principal)

    with unit_of_work():
        order = _load_order(scope, order_id)
        _set_status(order, status, principal, scope, "status_update", {"status": status})

    return order
