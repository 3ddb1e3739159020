from __future__ import annotations

from ..extensions import db
from order_gate.time_utils import to_utc_z


# Event classification (must match security_event_service)
EVENT_RATE_LIMIT = "RATE_LIMIT"
EVENT_BLACKLIST_BLOCK = "BLACKLIST_BLOCK"
EVENT_FAKE_ORDER_ATTEMPT = "FAKE_ORDER_ATTEMPT"
EVENT_FRAUD_DETECTED = "FRAUD_DETECTED"
EVENT_LOGIN_FAILURE = "LOGIN_FAILURE"

RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"
RISK_CRITICAL = "CRITICAL"

# Longest textual form of an IPv6 address (IPv4-mapped)
IP_ADDRESS_MAX_LENGTH = 45
USER_AGENT_MAX_LENGTH = 512


class SecurityEvent(db.Model):
    """
    Security event audit log for the order intake gate.

    WHY: Every rate-limit block, blacklist block and fraud rejection is
    recorded here with a risk level. The reasons behind a rejection live
    only in this table, never in the response sent to the client.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_type_occurred", "event_type", "occurred_at"),
        db.Index("ix_security_events_ip_occurred", "ip_address", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # RATE_LIMIT, BLACKLIST_BLOCK, FAKE_ORDER_ATTEMPT, FRAUD_DETECTED, LOGIN_FAILURE
    event_type = db.Column(db.String(64), nullable=False, index=True)
    risk_level = db.Column(db.String(16), nullable=False, index=True)

    description = db.Column(db.Text, nullable=False)
    details = db.Column(db.JSON, nullable=True)  # e.g. {"reasons": [...], "formData": {...}}

    # Client context
    ip_address = db.Column(db.String(IP_ADDRESS_MAX_LENGTH), nullable=True)
    user_agent = db.Column(db.String(USER_AGENT_MAX_LENGTH), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "risk_level": self.risk_level,
            "description": self.description,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class BlacklistEntry(db.Model):
    """
    Permanently blocked client IP.

    Entries are created by an operator or automatically on critical fraud
    scores. The same IP may appear more than once so that operator and
    automated blocks stay separately auditable. Removal is always explicit.
    """
    __tablename__ = "blacklist_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ip_address = db.Column(db.String(IP_ADDRESS_MAX_LENGTH), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<BlacklistEntry id={self.id} ip={self.ip_address!r} by={self.created_by!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ip": self.ip_address,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
