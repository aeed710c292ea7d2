from __future__ import annotations

import json

from ..extensions import db
from branchpos.time_utils import to_utc_z, utcnow


class AuditLog(db.Model):
    """
    Append-only, shop-scoped audit trail for order actions.

    entity_id is a plain integer (no FK) so the trail outlives a deleted
    order. details holds a JSON object describing the action.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_logs_shop_created", "shop_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True)

    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(32), nullable=False)  # create, cancel, refund, delete, status_update
    details = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "shop_id": self.shop_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "details": json.loads(self.details) if self.details else None,
            "created_at": to_utc_z(self.created_at),
        }


class OrderAuditLog(db.Model):
    """
    Reasoned order actions (currently deletions) kept after the order row
    is gone. order_id deliberately has no foreign key.
    """
    __tablename__ = "order_audit_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "action": self.action,
            "reason": self.reason,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }
