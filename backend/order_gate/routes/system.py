# backend/order_gate/routes/system.py
"""
Health endpoint for uptime checks and deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import BlacklistEntry, Order, Product
from order_gate.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/public")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        blacklist_count = db.session.query(BlacklistEntry).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "orders": order_count,
                "blacklisted_ips": blacklist_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_rate_limiter_health() -> dict:
    limiter = current_app.extensions.get("rate_limiter")
    if limiter is None:
        return {"status": "unhealthy", "error": "Rate limiter not configured"}
    return {
        "status": "healthy",
        "details": {
            "window_seconds": limiter.window_seconds,
            "max_requests": limiter.max_requests,
            "tracked_ips": limiter.tracked_count(),
        }
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    limiter_health = check_rate_limiter_health()

    all_checks = [database_health, limiter_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "rate_limiter": limiter_health,
        }
    }

    return response, http_status
