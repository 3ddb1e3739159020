# Overview: Service-layer operations for the IP blacklist; set membership over persisted entries.

"""
Blacklist Store

WHY: Permanently block client IPs that an operator flagged or that produced a
critical fraud score. Checked on every intake after rate limiting.

RULES:
- add() never deduplicates: operator and automated blocks of the same IP stay
  separately auditable, and removing one still leaves the IP blocked
- Entries are never removed implicitly; remove() is an explicit operator action
- add() flushes but does not commit; the caller owns the transaction
"""

from __future__ import annotations

from ..extensions import db
from ..models import BlacklistEntry
from ..models.security import IP_ADDRESS_MAX_LENGTH
from ..validation import ValidationError
from order_gate.time_utils import utcnow


AUTO_BLOCK_REASON = "Auto-blocked: Critical Fraud Detected"
AUTO_BLOCK_ACTOR = "System AI"
MAX_REASON_LENGTH = 255


class BlacklistEntryNotFound(LookupError):
    """Raised when removing an entry that does not exist."""


def _normalize_ip(ip: str | None) -> str:
    if ip is not None and not isinstance(ip, str):
        raise ValidationError("ip must be a string")
    value = (ip or "").strip()
    if not value:
        raise ValidationError("ip is required")
    if len(value) > IP_ADDRESS_MAX_LENGTH:
        raise ValidationError(f"ip must be at most {IP_ADDRESS_MAX_LENGTH} characters")
    return value


def _normalize_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    value = reason.strip()
    if len(value) > MAX_REASON_LENGTH:
        raise ValidationError(f"reason must be at most {MAX_REASON_LENGTH} characters")
    return value or None


class BlacklistStore:
    """Blacklist backed by the blacklist_entries table."""

    def is_blocked(self, ip: str) -> bool:
        value = (ip or "").strip()
        if not value:
            return False
        return (
            db.session.query(BlacklistEntry.id)
            .filter(BlacklistEntry.ip_address == value)
            .first()
            is not None
        )

    def add(self, ip: str, reason: str | None, actor: str) -> BlacklistEntry:
        entry = BlacklistEntry(
            ip_address=_normalize_ip(ip),
            reason=_normalize_reason(reason),
            created_by=actor,
            created_at=utcnow(),
        )
        db.session.add(entry)
        db.session.flush()
        return entry

    def remove(self, entry_id: int) -> None:
        entry = db.session.get(BlacklistEntry, entry_id)
        if entry is None:
            raise BlacklistEntryNotFound(f"Blacklist entry {entry_id} not found")
        db.session.delete(entry)
        db.session.flush()

    def list(self) -> list[BlacklistEntry]:
        return (
            db.session.query(BlacklistEntry)
            .order_by(BlacklistEntry.created_at.desc(), BlacklistEntry.id.desc())
            .all()
        )

    def entries_for(self, ip: str) -> list[BlacklistEntry]:
        return (
            db.session.query(BlacklistEntry)
            .filter(BlacklistEntry.ip_address == _normalize_ip(ip))
            .order_by(BlacklistEntry.id)
            .all()
        )
