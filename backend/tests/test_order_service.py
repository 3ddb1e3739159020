"""
Order lifecycle tests.

Verifies:
- Every transition appends exactly one log entry naming old and new status
- Cancel / return restock what the order still holds, never twice
- Bulk updates isolate failures per order
- Call results and shipments drive the state machine
"""

import re

import pytest

from order_gate.models import CallLog, OrderLog, StockMovement
from order_gate.services import order_service, stock_service
from order_gate.services.order_service import InvalidStatus, OrderError, OrderNotFound

from conftest import OPERATOR, make_request, variant_named


@pytest.fixture
def order(intake, product):
    return intake.submit(make_request(product, quantity=2))


def logs_for(db_session, order_id, action=None):
    q = db_session.query(OrderLog).filter_by(order_id=order_id)
    if action:
        q = q.filter_by(action=action)
    return q.order_by(OrderLog.id).all()


# =============================================================================
# SINGLE STATUS UPDATES
# =============================================================================


class TestUpdateStatus:

    def test_logs_old_and_new_status(self, order, db_session):
        updated = order_service.update_status(order.id, "ONAYLANDI", OPERATOR)

        assert updated.status == "ONAYLANDI"
        changes = logs_for(db_session, order.id, "STATUS_CHANGE")
        assert len(changes) == 1
        assert changes[0].message == "Status changed from NEW to ONAYLANDI"
        assert changes[0].user_id == "op-1"
        assert changes[0].user_name == "Operator One"

    def test_status_name_is_case_insensitive(self, order, db_session):
        assert order_service.update_status(order.id, "aranacak", OPERATOR).status == "ARANACAK"

    def test_operators_may_force_any_status(self, order, db_session):
        order_service.update_status(order.id, "TESLIM_EDILDI", OPERATOR)
        order_service.update_status(order.id, "NEW", OPERATOR)
        assert len(logs_for(db_session, order.id, "STATUS_CHANGE")) == 2

    def test_invalid_status(self, order, db_session):
        with pytest.raises(InvalidStatus):
            order_service.update_status(order.id, "SHIPPED", OPERATOR)
        assert logs_for(db_session, order.id, "STATUS_CHANGE") == []

    def test_missing_order(self, db_session):
        with pytest.raises(OrderNotFound):
            order_service.update_status(987654, "IPTAL", OPERATOR)

    def test_lifecycle_hints_are_advisory(self, order, db_session):
        assert order_service.lifecycle_hints("KARGODA") == {
            "suggested_statuses": ["IADE", "TESLIM_EDILDI"],
            "is_terminal": False,
        }
        assert order_service.lifecycle_hints("IPTAL") == {"suggested_statuses": [], "is_terminal": True}

        # Terminal status can still be forced away from
        order_service.update_status(order.id, "IPTAL", OPERATOR)
        assert order_service.update_status(order.id, "NEW", OPERATOR).status == "NEW"

    def test_immutable_fields_untouched(self, order, db_session):
        number, created = order.order_number, order.created_at
        order_service.update_status(order.id, "IPTAL", OPERATOR)
        assert order.order_number == number
        assert order.created_at == created
        assert order.customer_phone == "05327654321"


# =============================================================================
# STOCK SIDE EFFECTS
# =============================================================================


class TestRestock:

    def test_cancel_restocks_outstanding_quantity(self, order, product, db_session):
        black = variant_named(product, "Black")
        assert stock_service.get_variant_stock(black.id) == 98

        order_service.update_status(order.id, "IPTAL", OPERATOR)

        assert stock_service.get_variant_stock(black.id) == 100
        cancel = db_session.query(StockMovement).filter_by(order_id=order.id, type="CANCEL").one()
        assert cancel.quantity == 2
        assert cancel.user_name == "Operator One"

    def test_cancel_twice_restocks_once(self, order, product, db_session):
        black = variant_named(product, "Black")

        order_service.update_status(order.id, "IPTAL", OPERATOR)
        order_service.update_status(order.id, "IPTAL", OPERATOR)

        assert stock_service.get_variant_stock(black.id) == 100
        assert db_session.query(StockMovement).filter_by(order_id=order.id, type="CANCEL").count() == 1

    def test_reopened_order_takes_stock_again(self, order, product, db_session):
        black = variant_named(product, "Black")

        order_service.update_status(order.id, "IPTAL", OPERATOR)
        order_service.update_status(order.id, "ONAYLANDI", OPERATOR)
        assert stock_service.get_variant_stock(black.id) == 98

        order_service.mark_shipped(order.id, OPERATOR)
        order_service.update_status(order.id, "TESLIM_EDILDI", OPERATOR)

        assert stock_service.get_variant_stock(black.id) == 98
        assert black.stock == 98
        reopened = (
            db_session.query(StockMovement)
            .filter_by(order_id=order.id, type="OUT")
            .order_by(StockMovement.id)
            .all()
        )
        assert [m.quantity for m in reopened] == [2, 2]
        assert reopened[1].note == f"Order #{order.order_number} reopened"
        assert reopened[1].user_name == "Operator One"

    def test_cancel_reopen_cancel_nets_to_zero(self, order, product, db_session):
        black = variant_named(product, "Black")

        order_service.update_status(order.id, "IPTAL", OPERATOR)
        order_service.update_status(order.id, "ARANACAK", OPERATOR)
        order_service.update_status(order.id, "IPTAL", OPERATOR)

        assert stock_service.get_variant_stock(black.id) == 100
        assert db_session.query(StockMovement).filter_by(order_id=order.id, type="CANCEL").count() == 2
        assert stock_service.reconcile() == []

    def test_returned_order_reopened_by_call_result(self, order, product, db_session):
        black = variant_named(product, "Black")

        order_service.mark_shipped(order.id, OPERATOR)
        order_service.update_status(order.id, "IADE", OPERATOR)
        order_service.record_call_result(order.id, "REACHED_CONFIRMED", OPERATOR)

        assert stock_service.get_variant_stock(black.id) == 98

    def test_return_after_delivery(self, order, product, db_session):
        black = variant_named(product, "Black")

        order_service.mark_shipped(order.id, OPERATOR)
        order_service.update_status(order.id, "TESLIM_EDILDI", OPERATOR)
        assert stock_service.get_variant_stock(black.id) == 98

        order_service.update_status(order.id, "IADE", OPERATOR)
        assert stock_service.get_variant_stock(black.id) == 100
        assert db_session.query(StockMovement).filter_by(order_id=order.id, type="RETURN").count() == 1

    def test_return_after_cancel_does_not_double_count(self, order, product, db_session):
        black = variant_named(product, "Black")

        order_service.update_status(order.id, "IPTAL", OPERATOR)
        order_service.update_status(order.id, "IADE", OPERATOR)

        assert stock_service.get_variant_stock(black.id) == 100
        assert db_session.query(StockMovement).filter_by(order_id=order.id, type="RETURN").count() == 0

    def test_projection_matches_ledger_after_lifecycle(self, order, product, db_session):
        order_service.update_status(order.id, "IPTAL", OPERATOR)
        assert stock_service.reconcile() == []


# =============================================================================
# BULK UPDATES
# =============================================================================


class TestBulkUpdate:

    def test_missing_id_does_not_block_others(self, intake, product, db_session):
        a = intake.submit(make_request(product, phone="05327654301"))
        c = intake.submit(make_request(product, phone="05327654302"))

        result = order_service.bulk_update_status([a.id, 987654, c.id], "KARGODA", OPERATOR)

        assert result.updated == [a.id, c.id]
        assert list(result.failed) == [987654]
        assert a.status == "KARGODA"
        assert c.status == "KARGODA"

        for order_id in (a.id, c.id):
            changes = logs_for(db_session, order_id, "STATUS_CHANGE")
            assert len(changes) == 1
            assert changes[0].message == "Bulk status update: changed from NEW to KARGODA"

    def test_result_serialization(self, order, db_session):
        result = order_service.bulk_update_status([order.id, 987654], "IPTAL", OPERATOR)
        data = result.to_dict()
        assert data["updated"] == [order.id]
        assert "987654" in data["failed"]

    def test_invalid_status_rejects_whole_batch(self, order, db_session):
        with pytest.raises(InvalidStatus):
            order_service.bulk_update_status([order.id], "LOST", OPERATOR)
        assert order.status == "NEW"


# =============================================================================
# CALL CENTER
# =============================================================================


class TestCallResults:

    @pytest.mark.parametrize("outcome,status", [
        ("REACHED_CONFIRMED", "ONAYLANDI"),
        ("REACHED_CANCELLED", "IPTAL"),
        ("UNREACHABLE", "ULASILAMADI"),
        ("WRONG_NUMBER", "YANLIS_NUMARA"),
        ("BUSY", "ARANACAK"),
        ("SCHEDULED", "ARANACAK"),
    ])
    def test_outcome_mapping(self, order, db_session, outcome, status):
        updated = order_service.record_call_result(order.id, outcome, OPERATOR, duration_seconds=30)

        assert updated.status == status
        changes = logs_for(db_session, order.id, "STATUS_CHANGE")
        assert len(changes) == 1
        assert changes[0].message == f"Call result: {outcome}. Status changed from NEW to {status}"

        call = db_session.query(CallLog).filter_by(order_id=order.id).one()
        assert call.outcome == outcome
        assert call.duration_seconds == 30
        assert call.agent_name == "Operator One"

    def test_unchanged_status_logs_call_note(self, order, db_session):
        order_service.record_call_result(order.id, "BUSY", OPERATOR)
        order_service.record_call_result(order.id, "BUSY", OPERATOR, note="Line busy again")

        assert len(logs_for(db_session, order.id, "STATUS_CHANGE")) == 1
        call_logs = logs_for(db_session, order.id, "CALL_LOG")
        assert len(call_logs) == 1
        assert call_logs[0].message == "Call result: BUSY. Line busy again"
        assert db_session.query(CallLog).filter_by(order_id=order.id).count() == 2

    def test_cancel_by_phone_restocks(self, order, product, db_session):
        order_service.record_call_result(order.id, "REACHED_CANCELLED", OPERATOR)
        assert stock_service.get_variant_stock(variant_named(product, "Black").id) == 100

    def test_invalid_outcome(self, order, db_session):
        with pytest.raises(InvalidStatus):
            order_service.record_call_result(order.id, "HUNG_UP", OPERATOR)

    def test_negative_duration(self, order, db_session):
        with pytest.raises(OrderError):
            order_service.record_call_result(order.id, "BUSY", OPERATOR, duration_seconds=-5)

    def test_call_queue_oldest_first(self, intake, product, db_session):
        first = intake.submit(make_request(product, phone="05327654301"))
        second = intake.submit(make_request(product, phone="05327654302"))
        third = intake.submit(make_request(product, phone="05327654303"))
        order_service.update_status(second.id, "ONAYLANDI", OPERATOR)
        order_service.update_status(third.id, "ULASILAMADI", OPERATOR)

        queue = order_service.get_call_queue()
        assert [o.id for o in queue] == [first.id, third.id]


# =============================================================================
# SHIPMENT, NOTES, READS
# =============================================================================


class TestShipmentAndNotes:

    def test_shipment_forces_kargoda(self, order, db_session):
        order_service.update_status(order.id, "ULASILAMADI", OPERATOR)
        shipped = order_service.mark_shipped(order.id, OPERATOR)

        assert shipped.status == "KARGODA"
        assert re.fullmatch(r"TRK\d{6}", shipped.tracking_code)

        shipping = logs_for(db_session, order.id, "SHIPPING")
        assert len(shipping) == 1
        assert shipping[0].message == (
            f"Shipment created. Tracking: {shipped.tracking_code}. "
            "Status changed from ULASILAMADI to KARGODA"
        )

    def test_shipment_with_supplied_tracking_code(self, order, db_session):
        shipped = order_service.mark_shipped(order.id, OPERATOR, tracking_code="YK-{0}-778")
        assert shipped.tracking_code == "YK-{0}-778"
        assert "Tracking: YK-{0}-778." in logs_for(db_session, order.id, "SHIPPING")[0].message

    def test_add_note(self, order, db_session):
        entry = order_service.add_note(order.id, "  Customer prefers evening delivery ", OPERATOR)
        assert entry.action == "NOTE"
        assert entry.message == "Customer prefers evening delivery"

    def test_blank_note_rejected(self, order, db_session):
        with pytest.raises(OrderError):
            order_service.add_note(order.id, "   ", OPERATOR)

    def test_logs_newest_first(self, order, db_session):
        order_service.add_note(order.id, "first note", OPERATOR)
        order_service.add_note(order.id, "second note", OPERATOR)

        messages = [entry.message for entry in order_service.get_order_logs(order.id)]
        assert messages[0] == "second note"
        assert messages[-1] == "Order created via landing page"

    def test_order_number_format(self, order, db_session):
        assert re.fullmatch(r"ORD-\d{8}-[A-Z0-9]{4}", order.order_number)
