# Overview: Append-only order trails; status log, shop audit log, and reasoned order audit log.

from __future__ import annotations

import json
from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog, OrderAuditLog, OrderStatusLog
"""
Order Audit Invariants (authoritative)

- Append-only: no updates, no deletes (status logs go only with their order).
- Rows are written inside the same DB transaction as the change they record.
- Exactly one status-log row per status change.
- details is a JSON object; values that are not JSON-native (Decimal,
  datetime) are stored as strings.
"""


def log_status_change(order_id: int, status: str, user_id: int | None) -> OrderStatusLog:
    entry = OrderStatusLog(order_id=order_id, status=status, changed_by=user_id)
    db.session.add(entry)
    db.session.flush()
    return entry


def record_audit(
    *,
    user_id: int | None,
    shop_id: int | None,
    entity_id: int,
    action: str,
    details: Optional[dict[str, Any]] = None,
    entity_type: str = "order",
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        shop_id=shop_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details=json.dumps(details, default=str) if details is not None else None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record_order_audit(order_id: int, action: str, reason: str | None, user_id: int) -> OrderAuditLog:
    entry = OrderAuditLog(order_id=order_id, action=action, reason=reason, user_id=user_id)
    db.session.add(entry)
    db.session.flush()
    return entry
