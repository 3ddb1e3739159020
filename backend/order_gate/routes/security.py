# Overview: Flask API routes for security events and the IP blacklist; parses input and returns JSON responses.

# backend/order_gate/routes/security.py
"""
Security Console API Routes

WHY: Operators review what the intake gate rejected and manage blocked IPs.

DESIGN:
- Security events are read-only here (append-only log)
- Blacklist entries can be added and removed by operators; automatic
  entries created by fraud escalation are managed the same way
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_admin
from ..services import security_event_service
from ..services.blacklist_service import BlacklistStore, BlacklistEntryNotFound
from ..validation import ValidationError
from order_gate.time_utils import parse_iso_datetime


security_bp = Blueprint("security", __name__, url_prefix="/api/security")


@security_bp.get("/events")
@require_admin
def list_events_route():
    """
    List security events, newest first.

    Query params:
    - event_type: RATE_LIMIT, BLACKLIST_BLOCK, FAKE_ORDER_ATTEMPT, ...
    - ip: filter by client IP
    - since: ISO-8601 datetime (inclusive)
    - limit: max rows (default 100)
    """
    try:
        since_raw = request.args.get("since")
        try:
            since = parse_iso_datetime(since_raw)
        except ValueError:
            return jsonify({"error": "since must be an ISO-8601 datetime"}), 400

        events = security_event_service.list_events(
            event_type=request.args.get("event_type"),
            ip_address=request.args.get("ip"),
            since=since,
            limit=request.args.get("limit", 100, type=int),
        )
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except Exception:
        current_app.logger.exception("Failed to list security events")
        return jsonify({"error": "Internal server error"}), 500


@security_bp.get("/blacklist")
@require_admin
def list_blacklist_route():
    try:
        entries = BlacklistStore().list()
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except Exception:
        current_app.logger.exception("Failed to list blacklist")
        return jsonify({"error": "Internal server error"}), 500


@security_bp.post("/blacklist")
@require_admin
def add_blacklist_route():
    """
    Block an IP.

    Request body:
    {
        "ip": "203.0.113.7",
        "reason": "Repeated fake orders"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        entry = BlacklistStore().add(data.get("ip"), data.get("reason"), g.actor.name)
        db.session.commit()

        current_app.logger.info("IP %s blacklisted by %s", entry.ip_address, g.actor.name)
        return jsonify({"entry": entry.to_dict()}), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add blacklist entry")
        return jsonify({"error": "Internal server error"}), 500


@security_bp.delete("/blacklist/<int:entry_id>")
@require_admin
def remove_blacklist_route(entry_id: int):
    try:
        BlacklistStore().remove(entry_id)
        db.session.commit()

        current_app.logger.info("Blacklist entry %s removed by %s", entry_id, g.actor.name)
        return jsonify({"removed": entry_id}), 200

    except BlacklistEntryNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to remove blacklist entry")
        return jsonify({"error": "Internal server error"}), 500
