# Overview: Flask API routes for orders; parses input, calls order services, returns JSON responses.

# backend/branchpos/routes/orders.py
"""Order API routes scoped to the caller's shop/branch"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import OrderError, TransientConflict
from ..services import fulfillment_service, order_query_service, order_service
from ..validation import parse_bool, parse_create_order, parse_date_filter, parse_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_error(e: OrderError):
    if isinstance(e, TransientConflict):
        current_app.logger.warning("Order request gave up after lock conflicts: %s", e.details)
    return jsonify(e.to_dict()), e.status_code


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@orders_bp.post("/")
@require_auth
def create_order_route():
    """
    Create an order.

    Non-pending orders consume stock, redeem points/wallet and record payments
    in the same transaction. Returns {id, tax_total, total}.
    """
    try:
        order_request = parse_create_order(request.get_json(silent=True))
        created = order_service.create_order(g.principal, order_request)
        return jsonify(created.to_dict()), 201

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@require_auth
def list_orders_route():
    """
    List orders, newest first.

    Query params: status, branch_id, start_date, end_date, page, limit
    """
    try:
        args = request.args
        result = order_query_service.list_orders(
            g.principal,
            status=args.get("status") or None,
            branch_id=parse_int(args.get("branch_id"), "branch_id"),
            start_date=parse_date_filter(args.get("start_date"), "start_date"),
            end_date=parse_date_filter(args.get("end_date"), "end_date", end=True),
            page=parse_int(args.get("page"), "page"),
            limit=parse_int(args.get("limit"), "limit"),
        )
        return jsonify(result), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch orders")
        return jsonify({"error": "Failed to fetch orders"}), 500


@orders_bp.get("/history")
@require_auth
def order_history_route():
    try:
        result = order_query_service.order_history(
            g.principal,
            page=parse_int(request.args.get("page"), "page"),
            limit=parse_int(request.args.get("limit"), "limit"),
        )
        return jsonify(result), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch order history")
        return jsonify({"error": "Failed to fetch order history"}), 500


@orders_bp.get("/preparation")
@require_auth
def preparation_orders_route():
    """Online orders waiting to be prepared or picked up."""
    try:
        orders = order_query_service.preparation_orders(
            g.principal,
            store_id=parse_int(request.args.get("store_id"), "store_id"),
            status=request.args.get("status") or None,
            branch_id=parse_int(request.args.get("branch_id"), "branch_id"),
        )
        return jsonify(orders), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch preparation orders")
        return jsonify({"error": "Failed to retrieve preparation orders"}), 500


@orders_bp.get("/pending")
@require_auth
def pending_orders_route():
    try:
        return jsonify(order_query_service.pending_orders(g.principal)), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch pending orders")
        return jsonify({"error": "Failed to fetch pending orders"}), 500


@orders_bp.get("/order-audit-logs")
@require_auth
def order_audit_logs_route():
    try:
        return jsonify(order_query_service.order_audit_logs(g.principal)), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch order audit logs")
        return jsonify({"error": "Failed to fetch order audit logs"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify(order_query_service.get_order(g.principal, order_id)), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch order %s", order_id)
        return jsonify({"error": "Failed to fetch order"}), 500


@orders_bp.get("/<int:order_id>/items")
@require_auth
def order_items_route(order_id: int):
    try:
        return jsonify(order_query_service.order_items(g.principal, order_id)), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch items for order %s", order_id)
        return jsonify({"error": "Failed to retrieve order items"}), 500


@orders_bp.get("/<int:order_id>/payments")
@require_auth
def order_payments_route(order_id: int):
    try:
        return jsonify(order_query_service.order_payments(g.principal, order_id)), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch payments for order %s", order_id)
        return jsonify({"error": "Failed to retrieve order payments"}), 500


@orders_bp.post("/refund")
@require_auth
def refund_order_route():
    """
    Refund an order.

    Body: {order_id, amount, reason, refund_to_ewallet?}
    """
    try:
        data = _json_body()
        fulfillment_service.refund_order(
            g.principal,
            parse_int(data.get("order_id"), "order_id"),
            data.get("amount"),
            data.get("reason"),
            refund_to_ewallet=parse_bool(data.get("refund_to_ewallet"), "refund_to_ewallet"),
        )
        return jsonify({"success": True}), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        reason = _json_body().get("reason")
        order = fulfillment_service.cancel_order(g.principal, order_id, reason=reason)
        return jsonify(order.to_dict()), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/complete")
@require_auth
def mark_prepared_route(order_id: int):
    """Mark an online order as prepared and ready for pickup."""
    try:
        order = fulfillment_service.mark_prepared(g.principal, order_id)
        return jsonify(order.to_dict()), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to mark order %s prepared", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/pickup")
@require_auth
def pickup_order_route(order_id: int):
    try:
        order = fulfillment_service.pickup_order(g.principal, order_id)
        return jsonify(order.to_dict()), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to pick up order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
def delete_order_route(order_id: int):
    try:
        reason = _json_body().get("reason")
        fulfillment_service.delete_order(g.principal, order_id, reason=reason)
        return jsonify({"success": True}), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/status")
@require_auth
def update_order_status_route(order_id: int):
    """Administrative status correction; no stock or balance side effects."""
    try:
        status = _json_body().get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        fulfillment_service.update_order_status(g.principal, order_id, status)
        return jsonify({"success": True}), 200

    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to update status of order %s", order_id)
        return jsonify({"error": "Failed to update order status"}), 500
