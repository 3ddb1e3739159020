# backend/order_gate/routes/inventory.py
"""
Stock ledger routes.

SECURITY: All routes require the admin bearer token.

Ledger semantics:
- Movements are append-only; quantity is always positive, the sign comes from type.
- Variant stock reported here is derived from the ledger, alongside the
  stored projection so drift is visible.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import ProductVariant, StockMovement
from ..services import stock_service
from ..services.stock_service import StockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_stock_movement,
)
from ..decorators import require_admin


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"product_id", "variant_id", "type", "quantity", "note"}),
    required=frozenset({"product_id", "variant_id", "type", "quantity"}),
)


@inventory_bp.post("/movements")
@require_admin
def post_movement_route():
    """
    Post a manual stock movement (e.g. goods received).

    Request body:
    {
        "product_id": 1,
        "variant_id": 3,
        "type": "IN",
        "quantity": 50,
        "note": "Supplier delivery"  (optional)
    }
    """
    try:
        patch = validate_payload(
            model=StockMovement,
            payload=request.get_json(silent=True),
            policy=STOCK_MOVEMENT_POLICY,
        )
        enforce_rules_stock_movement(patch)

        movement = stock_service.post_movement_and_commit(
            product_id=patch["product_id"],
            variant_id=patch["variant_id"],
            quantity=patch["quantity"],
            movement_type=patch["type"].upper(),
            actor=g.actor,
            note=patch.get("note"),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except (ValidationError, StockError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to post stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_admin
def list_movements_route():
    """
    Query params:
    - product_id, variant_id: optional filters
    - limit: max rows (default 200)
    """
    try:
        movements = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            variant_id=request.args.get("variant_id", type=int),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/variants/<int:variant_id>/stock")
@require_admin
def get_variant_stock_route(variant_id: int):
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        return jsonify({"error": f"Variant {variant_id} not found"}), 404

    return jsonify({
        "variant_id": variant.id,
        "product_id": variant.product_id,
        "variant_name": variant.variant_name,
        "stock": stock_service.get_variant_stock(variant.id),
        "projected_stock": variant.stock,
    }), 200
