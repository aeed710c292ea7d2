from __future__ import annotations

from ..extensions import db
from branchpos.money import money_to_float
from branchpos.time_utils import to_utc_z, utcnow


# =============================================================================
# ORDER STATUS CONSTANTS
# =============================================================================

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PREPARING = "preparing"
ORDER_STATUS_PREPARED = "prepared"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)

# Logical status written to the audit trail when an order row is purged
ORDER_STATUS_DELETED = "deleted"


class Order(db.Model):
    """
    Order document attributed to a store within a branch.

    total is the amount the customer owes after item discounts, exchange
    rate, tax, order discount, loyalty points and e-wallet redemption,
    rounded to cents.

    fulfillment_applied is True while the order holds consumed stock and
    awarded loyalty points. Every reversal path checks it and clears it,
    so stock and points are returned exactly once.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_branch_status_created", "branch_id", "status", "created_at"),
        db.Index("ix_orders_store_id", "store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=False)

    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent
    tax_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_COMPLETED, index=True)
    is_online = db.Column(db.Boolean, nullable=False, default=False)
    is_refunded = db.Column(db.Boolean, nullable=False, default=False)
    fulfillment_applied = db.Column(db.Boolean, nullable=False, default=False)

    # Redemptions taken at capture time
    points_used = db.Column(db.Integer, nullable=False, default=0)
    ewallet_used = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    pickup_time = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    branch = db.relationship("Branch")
    store = db.relationship("Store")
    customer = db.relationship("Customer")
    currency = db.relationship("Currency")

    items = db.relationship(
        "OrderItem", backref="order", lazy=True,
        cascade="all, delete-orphan", order_by="OrderItem.id",
    )
    payments = db.relationship(
        "OrderPayment", backref="order", lazy=True,
        cascade="all, delete-orphan", order_by="OrderPayment.id",
    )
    refunds = db.relationship(
        "Refund", backref="order", lazy=True,
        cascade="all, delete-orphan", order_by="Refund.id",
    )
    status_logs = db.relationship(
        "OrderStatusLog", backref="order", lazy=True,
        cascade="all, delete-orphan", order_by="OrderStatusLog.id",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status!r} total={self.total}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "currency_id": self.currency_id,
            "total": money_to_float(self.total),
            "discount": float(self.discount or 0),
            "tax_total": money_to_float(self.tax_total),
            "status": self.status,
            "is_online": bool(self.is_online),
            "is_refunded": bool(self.is_refunded),
            "points_used": self.points_used,
            "ewallet_used": money_to_float(self.ewallet_used),
            "pickup_time": to_utc_z(self.pickup_time) if self.pickup_time else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item; immutable once the order has left pending."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("discount >= 0 AND discount <= 100", name="ck_order_items_discount_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent
    # Submitted price at capture time
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    customer_note = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": product.name if product else None,
            "quantity": self.quantity,
            "discount": float(self.discount or 0),
            "unit_price": money_to_float(self.unit_price),
            "price": money_to_float(product.price) if product else None,
            "customer_note": self.customer_note,
        }


class OrderPayment(db.Model):
    """
    Recorded tender for an order. Inserted once at creation for non-pending
    orders and never mutated; capture happens outside this system.
    """
    __tablename__ = "order_payments"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_order_payments_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payment_method_id": self.payment_method_id,
            "payment_method_name": self.payment_method.name if self.payment_method else None,
            "amount": money_to_float(self.amount),
            "created_at": to_utc_z(self.created_at),
        }


class OrderStatusLog(db.Model):
    """
    Append-only status trail. One row per status change, written in the
    same transaction as the change. Removed only with its order.
    """
    __tablename__ = "order_status_logs"
    __table_args__ = (
        db.Index("ix_order_status_logs_order_changed", "order_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }


class Refund(db.Model):
    """Append-only refund record; amount never exceeds the order total."""
    __tablename__ = "refunds"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_refunds_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    refund_to_ewallet = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": money_to_float(self.amount),
            "reason": self.reason,
            "refund_to_ewallet": self.refund_to_ewallet,
            "created_at": to_utc_z(self.created_at),
        }
