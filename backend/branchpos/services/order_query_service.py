# Overview: Scoped read models for orders; listings, history, preparation board, and order detail.

from __future__ import annotations

import math
from datetime import datetime

from flask import current_app, has_app_context
from sqlalchemy.orm import joinedload, selectinload

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderAuditLog, OrderItem, OrderPayment, User
from ..models.orders import (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_PREPARING,
    ORDER_STATUSES,
)
from .scope_service import Principal, require_branch_access, resolve_scope, scoped_orders


PREPARATION_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_PREPARING, ORDER_STATUS_PREPARED)


def _page_limits() -> tuple[int, int]:
    if has_app_context():
        return current_app.config.get("DEFAULT_PAGE_SIZE", 50), current_app.config.get("MAX_PAGE_SIZE", 200)
    return 50, 200


def _normalize_page(page: int | None, limit: int | None, default_limit: int | None = None) -> tuple[int, int]:
    default_size, max_size = _page_limits()
    page = page or 1
    limit = limit or default_limit or default_size
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return page, min(limit, max_size)


def _check_status(status: str | None) -> None:
    if status and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}", details={"allowed": list(ORDER_STATUSES)})


def list_orders(
    principal: Principal,
    *,
    status: str | None = None,
    branch_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """
    Newest-first order listing with items, filtered to the caller's scope.

    Returns {"orders": [...], "pagination": {total, page, limit, totalPages}}.
    """
    _check_status(status)
    page, limit = _normalize_page(page, limit)
    scope = resolve_scope(principal)
    require_branch_access(scope, branch_id)

    query = scoped_orders(scope)
    if status:
        query = query.filter(Order.status == status)
    if branch_id is not None:
        query = query.filter(Order.branch_id == branch_id)
    if start_date is not None:
        query = query.filter(Order.created_at >= start_date)
    if end_date is not None:
        query = query.filter(Order.created_at <= end_date)

    total = query.count()
    orders = (
        query.options(selectinload(Order.items).joinedload(OrderItem.product))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "orders": [order.to_dict(include_items=True) for order in orders],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


def order_history(principal: Principal, *, page: int | None = None, limit: int | None = None) -> dict:
    page, limit = _normalize_page(page, limit, default_limit=10)
    scope = resolve_scope(principal)

    query = scoped_orders(scope)
    total = query.count()
    orders = (
        query.options(joinedload(Order.customer), joinedload(Order.store), joinedload(Order.currency))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    results = []
    for order in orders:
        data = order.to_dict()
        data["currency_code"] = order.currency.code if order.currency else None
        results.append(data)

    return {
        "orders": results,
        "totalPages": math.ceil(total / limit) if total else 0,
        "currentPage": page,
    }


def preparation_orders(
    principal: Principal,
    *,
    store_id: int | None = None,
    status: str | None = None,
    branch_id: int | None = None,
) -> list[dict]:
    """Online orders still on the preparation board, earliest pickup first."""
    scope = resolve_scope(principal)
    require_branch_access(scope, branch_id)
    if status and status not in PREPARATION_STATUSES:
        raise ValidationError(f"Invalid preparation status: {status}")

    query = scoped_orders(scope).filter(
        Order.is_online.is_(True),
        Order.status.in_(PREPARATION_STATUSES),
    )
    if store_id is not None:
        query = query.filter(Order.store_id == store_id)
    if status:
        query = query.filter(Order.status == status)
    if branch_id is not None:
        query = query.filter(Order.branch_id == branch_id)

    orders = query.order_by(Order.pickup_time.asc(), Order.id.asc()).all()
    return [order.to_dict() for order in orders]


def pending_orders(principal: Principal) -> list[dict]:
    scope = resolve_scope(principal)
    orders = (
        scoped_orders(scope)
        .filter(Order.status == ORDER_STATUS_PENDING)
        .options(selectinload(Order.items).joinedload(OrderItem.product))
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )
    return [order.to_dict(include_items=True) for order in orders]


def get_order(principal: Principal, order_id: int) -> dict:
    scope = resolve_scope(principal)
    order = scoped_orders(scope).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found or unauthorized", details={"order_id": order_id})

    data = order.to_dict(include_items=True)
    data["address"] = order.store.address if order.store else None
    data["phone"] = order.store.phone if order.store else None
    data["payments"] = [payment.to_dict() for payment in order.payments]
    data["refunds"] = [refund.to_dict() for refund in order.refunds]
    return data


def _require_order_in_scope(principal: Principal, order_id: int):
    scope = resolve_scope(principal)
    exists = scoped_orders(scope).filter(Order.id == order_id).with_entities(Order.id).first()
    if not exists:
        raise NotFoundError("Order not found or unauthorized", details={"order_id": order_id})


def order_items(principal: Principal, order_id: int) -> list[dict]:
    _require_order_in_scope(principal, order_id)
    items = (
        db.session.query(OrderItem)
        .options(joinedload(OrderItem.product))
        .filter(OrderItem.order_id == order_id)
        .order_by(OrderItem.id)
        .all()
    )
    return [item.to_dict() for item in items]


def order_payments(principal: Principal, order_id: int) -> list[dict]:
    _require_order_in_scope(principal, order_id)
    payments = (
        db.session.query(OrderPayment)
        .options(joinedload(OrderPayment.payment_method))
        .filter(OrderPayment.order_id == order_id)
        .order_by(OrderPayment.id)
        .all()
    )
    return [payment.to_dict() for payment in payments]


def order_audit_logs(principal: Principal) -> list[dict]:
    """
    Reasoned order audit entries written by users in the caller's scope.

    Entries outlive their orders, so scope follows the acting user.
    """
    scope = resolve_scope(principal)
    query = (
        db.session.query(OrderAuditLog)
        .join(User, OrderAuditLog.user_id == User.id)
        .filter(User.shop_id == scope.shop_id)
    )
    if scope.branch_id is not None:
        query = query.filter(User.branch_id == scope.branch_id)

    logs = query.order_by(OrderAuditLog.created_at.desc(), OrderAuditLog.id.desc()).all()
    return [log.to_dict() for log in logs]
