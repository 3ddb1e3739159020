# Overview: Request helpers and the admin-token decorator for API routes.

import hmac
import ipaddress
from functools import wraps
from flask import request, jsonify, g, current_app

from .actors import Actor
from .extensions import db
from .models.security import EVENT_LOGIN_FAILURE, IP_ADDRESS_MAX_LENGTH, RISK_LOW
from .services import security_event_service


def _valid_ip(value: str) -> bool:
    if not value or len(value) > IP_ADDRESS_MAX_LENGTH:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def client_ip() -> str:
    """
    Resolve the requesting client's IP.

    Order: first X-Forwarded-For entry, X-Real-IP, the socket peer, then
    127.0.0.1. Proxy headers are ignored when TRUST_PROXY_HEADERS is off;
    header values that are not a plain IP address are skipped.
    """
    if current_app.config.get("TRUST_PROXY_HEADERS", True):
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if _valid_ip(first):
            return first
        real_ip = (request.headers.get("X-Real-IP") or "").strip()
        if _valid_ip(real_ip):
            return real_ip
    return request.remote_addr or "127.0.0.1"


def require_admin(f):
    """
    Require the shared admin bearer token.

    Sets g.actor from X-Actor-Id / X-Actor-Name so order logs and stock
    movements name the operator. Failed attempts are recorded as
    LOGIN_FAILURE security events.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            _record_login_failure("Missing bearer token")
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        expected = current_app.config.get("ADMIN_API_TOKEN") or ""

        if not expected or not hmac.compare_digest(token.encode(), expected.encode()):
            _record_login_failure("Invalid admin token")
            return jsonify({"error": "Invalid or expired token"}), 401

        g.actor = Actor(
            id=(request.headers.get("X-Actor-Id") or "admin").strip() or "admin",
            name=(request.headers.get("X-Actor-Name") or "Admin").strip() or "Admin",
        )
        return f(*args, **kwargs)

    return decorated_function


def _record_login_failure(reason: str) -> None:
    security_event_service.log_event(
        event_type=EVENT_LOGIN_FAILURE,
        risk_level=RISK_LOW,
        description=f"Admin API authentication failed: {reason}",
        ip_address=client_ip(),
        user_agent=request.headers.get("User-Agent"),
        details={"path": request.path, "method": request.method},
    )
    db.session.commit()
