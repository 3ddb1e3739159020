# Overview: Service-layer operations for the security event log; append-only writes and reads.

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import SecurityEvent
from ..models.security import (
    EVENT_RATE_LIMIT,
    EVENT_BLACKLIST_BLOCK,
    EVENT_FAKE_ORDER_ATTEMPT,
    EVENT_FRAUD_DETECTED,
    EVENT_LOGIN_FAILURE,
    RISK_LOW,
    RISK_MEDIUM,
    RISK_HIGH,
    RISK_CRITICAL,
    USER_AGENT_MAX_LENGTH,
)
from order_gate.time_utils import utcnow


VALID_EVENT_TYPES = {
    EVENT_RATE_LIMIT,
    EVENT_BLACKLIST_BLOCK,
    EVENT_FAKE_ORDER_ATTEMPT,
    EVENT_FRAUD_DETECTED,
    EVENT_LOGIN_FAILURE,
}
VALID_RISK_LEVELS = {RISK_LOW, RISK_MEDIUM, RISK_HIGH, RISK_CRITICAL}


def log_event(
    *,
    event_type: str,
    risk_level: str,
    description: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    details: dict | None = None,
) -> SecurityEvent:
    """
    Append a security event to the current session.

    The caller owns the commit so the event lands in the same transaction
    as whatever else the rejection writes (e.g. an auto-blacklist entry).

    event_type examples:
    - RATE_LIMIT (MEDIUM)
    - BLACKLIST_BLOCK (HIGH)
    - FAKE_ORDER_ATTEMPT (CRITICAL)
    - LOGIN_FAILURE (LOW)
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"Invalid security event type: {event_type}")
    if risk_level not in VALID_RISK_LEVELS:
        raise ValueError(f"Invalid risk level: {risk_level}")

    event = SecurityEvent(
        event_type=event_type,
        risk_level=risk_level,
        description=description,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.flush()
    return event


def list_events(
    *,
    event_type: str | None = None,
    ip_address: str | None = None,
    since: datetime | None = None,
    limit: int = 100,
) -> list[SecurityEvent]:
    """Newest first. `since` is inclusive."""
    q = db.session.query(SecurityEvent)
    if event_type:
        q = q.filter(SecurityEvent.event_type == event_type)
    if ip_address:
        q = q.filter(SecurityEvent.ip_address == ip_address)
    if since is not None:
        q = q.filter(SecurityEvent.occurred_at >= since)

    return (
        q.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc())
        .limit(max(1, min(limit, 1000)))
        .all()
    )


def count_events(event_type: str, ip_address: str | None = None) -> int:
    q = db.session.query(SecurityEvent).filter(SecurityEvent.event_type == event_type)
    if ip_address:
        q = q.filter(SecurityEvent.ip_address == ip_address)
    return q.count()


def cleanup_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
