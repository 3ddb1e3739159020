"""
Blacklist store and security event log tests.
"""

from datetime import timedelta

import pytest

from order_gate.models import SecurityEvent
from order_gate.services import security_event_service
from order_gate.services.blacklist_service import BlacklistEntryNotFound, BlacklistStore
from order_gate.time_utils import utcnow
from order_gate.validation import ValidationError


@pytest.fixture
def store(db_session):
    return BlacklistStore()


class TestBlacklistStore:

    def test_add_and_check(self, store, db_session):
        assert store.is_blocked("203.0.113.7") is False

        entry = store.add("203.0.113.7", "Repeated fake orders", "Operator One")
        db_session.commit()

        assert store.is_blocked("203.0.113.7") is True
        assert entry.to_dict()["ip"] == "203.0.113.7"
        assert entry.created_by == "Operator One"

    def test_ip_is_trimmed(self, store, db_session):
        store.add("  203.0.113.7 ", None, "Operator One")
        db_session.commit()
        assert store.is_blocked("203.0.113.7")

    def test_duplicates_are_kept_separately(self, store, db_session):
        first = store.add("203.0.113.7", "manual", "Operator One")
        store.add("203.0.113.7", "auto", "System AI")
        db_session.commit()

        assert len(store.entries_for("203.0.113.7")) == 2

        store.remove(first.id)
        db_session.commit()
        assert store.is_blocked("203.0.113.7") is True

    def test_remove_unblocks(self, store, db_session):
        entry = store.add("203.0.113.7", None, "Operator One")
        db_session.commit()

        store.remove(entry.id)
        db_session.commit()
        assert store.is_blocked("203.0.113.7") is False

    def test_remove_missing_entry(self, store, db_session):
        with pytest.raises(BlacklistEntryNotFound):
            store.remove(987654)

    def test_blank_ip_rejected(self, store, db_session):
        with pytest.raises(ValidationError):
            store.add("   ", "x", "Operator One")

    def test_blank_ip_is_never_blocked(self, store, db_session):
        assert store.is_blocked("") is False

    def test_list_newest_first(self, store, db_session):
        store.add("203.0.113.1", None, "Operator One")
        store.add("203.0.113.2", None, "Operator One")
        db_session.commit()

        assert [e.ip_address for e in store.list()] == ["203.0.113.2", "203.0.113.1"]


class TestSecurityEvents:

    def test_log_and_filter(self, db_session):
        security_event_service.log_event(
            event_type="RATE_LIMIT", risk_level="MEDIUM", description="burst", ip_address="203.0.113.1",
        )
        security_event_service.log_event(
            event_type="BLACKLIST_BLOCK", risk_level="HIGH", description="blocked", ip_address="203.0.113.2",
        )
        db_session.commit()

        assert [e.event_type for e in security_event_service.list_events()] == ["BLACKLIST_BLOCK", "RATE_LIMIT"]
        assert len(security_event_service.list_events(ip_address="203.0.113.1")) == 1
        assert security_event_service.count_events("RATE_LIMIT") == 1

    @pytest.mark.parametrize("event_type,risk", [("SOMETHING", "LOW"), ("RATE_LIMIT", "EXTREME")])
    def test_rejects_unknown_type_or_risk(self, db_session, event_type, risk):
        with pytest.raises(ValueError):
            security_event_service.log_event(event_type=event_type, risk_level=risk, description="x")

    def test_cleanup_keeps_recent_events(self, db_session):
        old = security_event_service.log_event(event_type="RATE_LIMIT", risk_level="MEDIUM", description="old")
        security_event_service.log_event(event_type="RATE_LIMIT", risk_level="MEDIUM", description="new")
        old.occurred_at = utcnow() - timedelta(days=120)
        db_session.commit()

        assert security_event_service.cleanup_events(retention_days=90) == 1
        assert [e.description for e in db_session.query(SecurityEvent).all()] == ["new"]
