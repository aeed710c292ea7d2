# Overview: Pytest coverage for order transitions; cancel, prepare, pickup, refund, delete and status updates.

"""
Order Fulfillment Tests

Each transition is checked for its status guard (rejections change nothing)
and for the side effects that must land with the status change.
"""

from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql

from branchpos.errors import (
    InvalidTransition,
    NotFoundError,
    RefundExceedsTotal,
    ValidationError,
)
from branchpos.models import AuditLog, Customer, Order, OrderAuditLog, OrderStatusLog, Product, Refund
from branchpos.services import fulfillment_service
from branchpos.services.order_service import create_order
from branchpos.services.scope_service import resolve_scope

from conftest import order_request, principal_for


@pytest.fixture
def cashier(cashier_a1):
    return principal_for(cashier_a1)


@pytest.fixture
def make_order(db_session, cashier, store_a1, product_a, currency, cash):
    """Create a 2 x 10.00 order in the given status and return its id."""
    def _make(status="completed", customer=None, is_online=False):
        created = create_order(cashier, order_request(
            store_a1, currency, [(product_a, 2)],
            payments=[(cash, "20.00")],
            status=status,
            customer_id=customer.id if customer else None,
            is_online=is_online,
        ))
        return created.id
    return _make


def _status_logs(session, order_id):
    return [log.status for log in session.query(OrderStatusLog).filter_by(order_id=order_id).order_by(OrderStatusLog.id)]


class TestCancel:

    def test_cancel_preparing_restores_stock_and_points(self, db_session, cashier, make_order, product_a, customer_a):
        order_id = make_order(status="preparing", customer=customer_a)
        assert db_session.get(Product, product_a.id).stock == 3
        assert db_session.get(Customer, customer_a.id).loyalty_points == 70

        order = fulfillment_service.cancel_order(cashier, order_id)

        assert order.status == "cancelled"
        assert order.fulfillment_applied is False
        assert db_session.get(Product, product_a.id).stock == 5
        assert db_session.get(Customer, customer_a.id).loyalty_points == 50
        assert _status_logs(db_session, order_id) == ["preparing", "cancelled"]
        assert db_session.query(Refund).filter_by(order_id=order_id).count() == 0

    def test_cancel_with_reason_records_refund(self, db_session, cashier, make_order):
        order_id = make_order(status="preparing")

        fulfillment_service.cancel_order(cashier, order_id, reason="Customer left")

        refund = db_session.query(Refund).filter_by(order_id=order_id).one()
        assert refund.amount == Decimal("20.00")
        assert refund.reason == "Customer left"

    def test_cancel_completed_rejected(self, db_session, cashier, make_order, product_a):
        order_id = make_order(status="completed")

        with pytest.raises(InvalidTransition):
            fulfillment_service.cancel_order(cashier, order_id)

        assert db_session.get(Order, order_id).status == "completed"
        assert db_session.get(Product, product_a.id).stock == 3
        assert _status_logs(db_session, order_id) == ["completed"]

    def test_cancel_out_of_branch_not_found(self, db_session, cashier_a2, make_order):
        order_id = make_order(status="preparing")

        with pytest.raises(NotFoundError):
            fulfillment_service.cancel_order(principal_for(cashier_a2), order_id)

        assert db_session.get(Order, order_id).status == "preparing"


class TestPreparationAndPickup:

    def test_online_order_flow(self, db_session, cashier, make_order):
        order_id = make_order(status="preparing", is_online=True)

        fulfillment_service.mark_prepared(cashier, order_id)
        assert db_session.get(Order, order_id).status == "prepared"

        fulfillment_service.pickup_order(cashier, order_id)
        assert db_session.get(Order, order_id).status == "completed"

        assert _status_logs(db_session, order_id) == ["preparing", "prepared", "completed"]
        actions = [a.action for a in db_session.query(AuditLog).filter_by(entity_id=order_id).order_by(AuditLog.id)]
        assert actions == ["create", "status_update", "status_update"]

    def test_mark_prepared_requires_online(self, db_session, cashier, make_order):
        order_id = make_order(status="preparing", is_online=False)

        with pytest.raises(InvalidTransition):
            fulfillment_service.mark_prepared(cashier, order_id)

    def test_second_pickup_rejected(self, db_session, cashier, make_order):
        order_id = make_order(status="prepared", is_online=True)
        fulfillment_service.pickup_order(cashier, order_id)

        with pytest.raises(InvalidTransition):
            fulfillment_service.pickup_order(cashier, order_id)

        assert _status_logs(db_session, order_id) == ["prepared", "completed"]

    def test_pickup_requires_prepared(self, db_session, cashier, make_order):
        order_id = make_order(status="preparing", is_online=True)

        with pytest.raises(InvalidTransition):
            fulfillment_service.pickup_order(cashier, order_id)


class TestRefund:

    def test_refund_exceeding_total_changes_nothing(self, db_session, cashier, make_order, product_a, customer_a):
        order_id = make_order(status="completed", customer=customer_a)

        with pytest.raises(RefundExceedsTotal):
            fulfillment_service.refund_order(cashier, order_id, "25.00", "Damaged", refund_to_ewallet=True)

        order = db_session.get(Order, order_id)
        assert order.status == "completed"
        assert order.is_refunded is False
        assert db_session.query(Refund).count() == 0
        assert db_session.get(Product, product_a.id).stock == 3
        customer = db_session.get(Customer, customer_a.id)
        assert customer.ewallet_balance == Decimal("20.00")
        assert customer.loyalty_points == 70

    def test_partial_refund_to_wallet(self, db_session, cashier, make_order, product_a, customer_a):
        order_id = make_order(status="completed", customer=customer_a)

        refund = fulfillment_service.refund_order(cashier, order_id, "10.00", "Damaged", refund_to_ewallet=True)

        assert refund.amount == Decimal("10.00")
        order = db_session.get(Order, order_id)
        assert order.status == "cancelled"
        assert order.is_refunded is True
        assert db_session.get(Product, product_a.id).stock == 5

        customer = db_session.get(Customer, customer_a.id)
        assert customer.ewallet_balance == Decimal("30.00")
        # 50 + 20 earned - floor(10.00) taken back
        assert customer.loyalty_points == 60

        audit = db_session.query(AuditLog).filter_by(entity_id=order_id, action="refund").one()
        assert audit.to_dict()["details"] == {"amount": 10.0, "reason": "Damaged", "refund_to_ewallet": True}

    def test_second_refund_rejected(self, db_session, cashier, make_order, product_a):
        order_id = make_order(status="completed")
        fulfillment_service.refund_order(cashier, order_id, "20.00", "Wrong item")

        with pytest.raises(InvalidTransition):
            fulfillment_service.refund_order(cashier, order_id, "1.00", "Again")

        assert db_session.query(Refund).filter_by(order_id=order_id).count() == 1
        assert db_session.get(Product, product_a.id).stock == 5

    def test_refund_after_cancel_does_not_restore_twice(self, db_session, cashier, make_order, product_a):
        order_id = make_order(status="preparing")
        fulfillment_service.cancel_order(cashier, order_id)

        fulfillment_service.refund_order(cashier, order_id, "20.00", "Late refund")

        assert db_session.get(Product, product_a.id).stock == 5

    def test_wallet_refund_without_customer_skips_credit(self, db_session, cashier, make_order, customer_a):
        """Walk-in orders are refunded; there is no wallet to credit."""
        order_id = make_order(status="completed")

        refund = fulfillment_service.refund_order(cashier, order_id, "5.00", "No account", refund_to_ewallet=True)

        assert refund.amount == Decimal("5.00")
        assert refund.refund_to_ewallet is True
        order = db_session.get(Order, order_id)
        assert order.status == "cancelled"
        assert order.is_refunded is True
        assert db_session.query(Refund).filter_by(order_id=order_id).count() == 1
        assert db_session.get(Customer, customer_a.id).ewallet_balance == Decimal("20.00")

    @pytest.mark.parametrize("amount, reason", [
        ("0", "Zero"),
        ("-5", "Negative"),
        ("5.00", None),
        ("5.00", ""),
    ])
    def test_malformed_refund_rejected(self, db_session, cashier, make_order, amount, reason):
        order_id = make_order(status="completed")

        with pytest.raises(ValidationError):
            fulfillment_service.refund_order(cashier, order_id, amount, reason)


class TestDelete:

    def test_delete_keeps_audit_trail(self, db_session, cashier, cashier_a1, make_order):
        order_id = make_order(status="preparing")

        fulfillment_service.delete_order(cashier, order_id, reason="Duplicate entry")

        assert db_session.get(Order, order_id) is None
        assert db_session.query(OrderStatusLog).filter_by(order_id=order_id).count() == 0

        audit = db_session.query(AuditLog).filter_by(entity_id=order_id, action="delete").one()
        assert audit.to_dict()["details"]["reason"] == "Duplicate entry"
        assert audit.to_dict()["details"]["status"] == "deleted"
        assert audit.to_dict()["details"]["previous_status"] == "preparing"

        order_audit = db_session.query(OrderAuditLog).filter_by(order_id=order_id).one()
        assert order_audit.action == "delete"
        assert order_audit.user_id == cashier_a1.id

    def test_delete_completed_rejected(self, db_session, cashier, make_order):
        order_id = make_order(status="completed")

        with pytest.raises(InvalidTransition):
            fulfillment_service.delete_order(cashier, order_id)

        assert db_session.get(Order, order_id) is not None

    def test_delete_cancelled_does_not_restore_again(self, db_session, cashier, make_order, product_a):
        order_id = make_order(status="preparing")
        fulfillment_service.cancel_order(cashier, order_id)
        assert db_session.get(Product, product_a.id).stock == 5

        fulfillment_service.delete_order(cashier, order_id)

        assert db_session.get(Product, product_a.id).stock == 5

    def test_delete_pending_leaves_stock(self, db_session, cashier, make_order, product_a):
        order_id = make_order(status="pending")

        fulfillment_service.delete_order(cashier, order_id)

        assert db_session.get(Product, product_a.id).stock == 5


class TestStatusUpdate:

    def test_status_update_logs_only(self, db_session, cashier, make_order, product_a):
        order_id = make_order(status="completed")

        fulfillment_service.update_order_status(cashier, order_id, "preparing")

        assert db_session.get(Order, order_id).status == "preparing"
        assert db_session.get(Product, product_a.id).stock == 3
        assert _status_logs(db_session, order_id) == ["completed", "preparing"]

    def test_unknown_status_rejected(self, db_session, cashier, make_order):
        order_id = make_order(status="completed")

        with pytest.raises(ValidationError):
            fulfillment_service.update_order_status(cashier, order_id, "shipped")


class TestRowLocking:

    def test_transition_locks_only_the_order_row(self, db_session, cashier):
        query = fulfillment_service._order_query(resolve_scope(cashier), 1)

        sql = str(query.statement.compile(dialect=postgresql.dialect()))

        assert "JOIN branches" in sql
        assert sql.rstrip().endswith("FOR UPDATE OF orders")

    def test_read_does_not_lock(self, db_session, cashier):
        query = fulfillment_service._order_query(resolve_scope(cashier), 1, for_update=False)

        assert "FOR UPDATE" not in str(query.statement.compile(dialect=postgresql.dialect()))
