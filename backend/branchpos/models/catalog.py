from __future__ import annotations

from ..extensions import db
from branchpos.money import money_to_float
from branchpos.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product as seen by the order engine.

    Catalog management lives elsewhere; orders only read price and move
    stock. stock is a plain counter that the inventory service decrements
    on fulfillment and increments on reversal.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_shop_id", "shop_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "price": money_to_float(self.price),
            "stock": self.stock,
            "created_at": to_utc_z(self.created_at),
        }


class Customer(db.Model):
    """
    Customer balances owned by the order engine.

    loyalty_points and ewallet_balance are shared counters: every
    read-then-write happens inside the order transaction that justified it.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("loyalty_points >= 0", name="ck_customers_points_non_negative"),
        db.CheckConstraint("ewallet_balance >= 0", name="ck_customers_ewallet_non_negative"),
        db.Index("ix_customers_shop_id", "shop_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    ewallet_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "phone": self.phone,
            "loyalty_points": self.loyalty_points,
            "ewallet_balance": money_to_float(self.ewallet_balance),
            "created_at": to_utc_z(self.created_at),
        }


class Currency(db.Model):
    """Currency with its exchange rate against the shop's base prices."""
    __tablename__ = "currencies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(8), nullable=False, unique=True)
    # NULL means "same as base currency"
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "exchange_rate": float(self.exchange_rate) if self.exchange_rate is not None else None,
        }


class PaymentMethod(db.Model):
    """Tender type an order payment is recorded against (cash, card, ...)."""
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
        }
