# Overview: Flask API routes for order lifecycle operations; parses input and returns JSON responses.

# backend/order_gate/routes/orders.py
"""
Order Lifecycle API Routes

WHY: The admin console and call center move orders through their lifecycle:
status changes, call results, shipments, notes and card payments.

SECURITY:
- Every route requires the admin bearer token
- The acting operator (X-Actor-Id / X-Actor-Name) is written to each log entry
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_admin
from ..services import order_service, payment_service
from ..services.order_service import OrderError, OrderNotFound, InvalidStatus
from ..services.payment_service import PaymentError
from ..services.stock_service import StockError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# READS
# =============================================================================

@orders_bp.get("/<int:order_id>")
@require_admin
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({
            "order": order.to_dict(),
            "lifecycle": order_service.lifecycle_hints(order.status),
        }), 200
    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/logs")
@require_admin
def get_order_logs_route(order_id: int):
    """Order audit trail, newest first."""
    try:
        logs = order_service.get_order_logs(order_id)
        return jsonify({"logs": [entry.to_dict() for entry in logs]}), 200
    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get order logs")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/call-queue")
@require_admin
def get_call_queue_route():
    """
    Orders still waiting for the call center (NEW, ARANACAK, ULASILAMADI).

    Query params:
    - limit: max rows (default 100, max 500)
    """
    try:
        limit = request.args.get("limit", 100, type=int)
        limit = max(1, min(limit, 500))
        orders = order_service.get_call_queue(limit=limit)
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200
    except Exception:
        current_app.logger.exception("Failed to get call queue")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@orders_bp.post("/<int:order_id>/status")
@require_admin
def update_status_route(order_id: int):
    """
    Force an order into a status.

    Request body:
    {
        "status": "ONAYLANDI"
    }

    Returns:
        200: Order updated
        400: Invalid status
        404: Order not found
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status is required"}), 400

        order = order_service.update_status(order_id, status, g.actor)
        return jsonify({"order": order.to_dict()}), 200

    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except (InvalidStatus, StockError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/bulk-status")
@require_admin
def bulk_update_status_route():
    """
    Apply one status to many orders; each order succeeds or fails on its own.

    Request body:
    {
        "order_ids": [1, 2, 3],
        "status": "KARGODA"
    }

    Returns:
        200: {"updated": [...], "failed": {"2": "Order 2 not found"}}
        400: Invalid status or payload
    """
    try:
        data = request.get_json(silent=True) or {}
        order_ids = data.get("order_ids")
        status = data.get("status")

        if not isinstance(order_ids, list) or not order_ids:
            return jsonify({"error": "order_ids must be a non-empty list"}), 400
        if any(isinstance(i, bool) or not isinstance(i, int) for i in order_ids):
            return jsonify({"error": "order_ids must contain integers"}), 400
        if not status:
            return jsonify({"error": "status is required"}), 400

        result = order_service.bulk_update_status(order_ids, status, g.actor)
        return jsonify(result.to_dict()), 200

    except InvalidStatus as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to bulk update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/call-result")
@require_admin
def record_call_result_route(order_id: int):
    """
    Record a call-center call.

    Request body:
    {
        "outcome": "REACHED_CONFIRMED",
        "note": "Customer confirmed address",  (optional)
        "duration_seconds": 95                  (optional)
    }

    OUTCOMES:
    - REACHED_CONFIRMED -> ONAYLANDI
    - REACHED_CANCELLED -> IPTAL
    - UNREACHABLE       -> ULASILAMADI
    - WRONG_NUMBER      -> YANLIS_NUMARA
    - BUSY / SCHEDULED  -> ARANACAK
    """
    try:
        data = request.get_json(silent=True) or {}
        outcome = data.get("outcome")
        if not outcome:
            return jsonify({"error": "outcome is required"}), 400

        duration = data.get("duration_seconds", 0)
        if isinstance(duration, bool) or not isinstance(duration, int):
            return jsonify({"error": "duration_seconds must be an integer"}), 400

        order = order_service.record_call_result(
            order_id,
            outcome,
            g.actor,
            note=data.get("note"),
            duration_seconds=duration,
        )
        return jsonify({"order": order.to_dict()}), 200

    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except (OrderError, StockError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record call result")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/shipment")
@require_admin
def create_shipment_route(order_id: int):
    """
    Hand an order to the carrier (forces KARGODA).

    Request body (optional):
    {
        "tracking_code": "TRK123456"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.mark_shipped(order_id, g.actor, tracking_code=data.get("tracking_code"))
        return jsonify({"order": order.to_dict()}), 200

    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except (OrderError, StockError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create shipment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/notes")
@require_admin
def add_note_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        entry = order_service.add_note(order_id, data.get("message"), g.actor)
        return jsonify({"log": entry.to_dict()}), 201

    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except OrderError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to add order note")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@orders_bp.post("/<int:order_id>/payment")
@require_admin
def charge_order_route(order_id: int):
    """
    Charge a CREDIT_CARD order through the configured payment provider.

    Request body:
    {
        "card": {"number": "...", "holder": "...", "expiry": "12/29", "cvv": "123"}
    }

    Returns:
        200: Charge succeeded (order PAID)
        402: Provider declined the charge (order unchanged)
        400: Order not chargeable or card incomplete
        404: Order not found
    """
    try:
        data = request.get_json(silent=True) or {}
        gateway = current_app.extensions["payment_gateway"]

        result = payment_service.process_card_payment(order_id, data.get("card"), gateway, g.actor)
        order = order_service.get_order(order_id)

        return jsonify({
            "payment": result.to_dict(),
            "order": order.to_dict(),
        }), 200 if result.success else 402

    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to charge order")
        return jsonify({"error": "Internal server error"}), 500
