# Overview: Service-layer operations for orders; creation, status lifecycle and the order audit trail.

"""
Order Lifecycle Service

STATE MACHINE (advisory, not enforced):

    NEW -> {ARANACAK, ULASILAMADI, YANLIS_NUMARA, ONAYLANDI, IPTAL} -> KARGODA -> {TESLIM_EDILDI, IADE}

    NEW:            Initial state of every order accepted at intake
    ARANACAK:       To be called (busy / scheduled callback)
    ULASILAMADI:    Customer unreachable
    YANLIS_NUMARA:  Wrong number (terminal)
    ONAYLANDI:      Confirmed by phone or paid online
    IPTAL:          Cancelled (terminal)
    KARGODA:        Handed to the carrier
    TESLIM_EDILDI:  Delivered (terminal)
    IADE:           Returned (terminal)

RULES:
1. NEW is the only initial state; only create_order() produces it
2. Operators may force any valid status; the table above is not enforced
3. Every status change appends exactly one OrderLog entry naming old and new status
4. Entering IPTAL restocks with CANCEL movements, entering IADE with RETURN
   movements, limited to what the order still holds (never twice). Leaving
   IPTAL or IADE for any other status takes the items out of stock again
5. Creating a shipment forces KARGODA regardless of the previous status
6. Bulk updates run the single-order procedure per id; one failure never
   blocks the others
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime

from ..extensions import db
from ..models import CallLog, Order, OrderItem, OrderLog
from order_gate.actors import Actor
from order_gate.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .fraud_service import OrderSnapshot
from .stock_service import MOVEMENT_CANCEL, MOVEMENT_RETURN, StockError, reserve_order, restock_order


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

STATUS_NEW = "NEW"
STATUS_ARANACAK = "ARANACAK"
STATUS_ULASILAMADI = "ULASILAMADI"
STATUS_YANLIS_NUMARA = "YANLIS_NUMARA"
STATUS_ONAYLANDI = "ONAYLANDI"
STATUS_IPTAL = "IPTAL"
STATUS_KARGODA = "KARGODA"
STATUS_TESLIM_EDILDI = "TESLIM_EDILDI"
STATUS_IADE = "IADE"

VALID_STATUSES = {
    STATUS_NEW,
    STATUS_ARANACAK,
    STATUS_ULASILAMADI,
    STATUS_YANLIS_NUMARA,
    STATUS_ONAYLANDI,
    STATUS_IPTAL,
    STATUS_KARGODA,
    STATUS_TESLIM_EDILDI,
    STATUS_IADE,
}
TERMINAL_STATUSES = {STATUS_TESLIM_EDILDI, STATUS_IADE, STATUS_IPTAL, STATUS_YANLIS_NUMARA}
# Orders in these statuses hold no stock
RESTOCKED_STATUSES = {STATUS_IPTAL, STATUS_IADE}
CALL_QUEUE_STATUSES = (STATUS_NEW, STATUS_ARANACAK, STATUS_ULASILAMADI)

# Advisory forward transitions, exposed for UIs; never enforced here
SUGGESTED_TRANSITIONS = {
    STATUS_NEW: {STATUS_ARANACAK, STATUS_ULASILAMADI, STATUS_YANLIS_NUMARA, STATUS_ONAYLANDI, STATUS_IPTAL},
    STATUS_ARANACAK: {STATUS_ULASILAMADI, STATUS_YANLIS_NUMARA, STATUS_ONAYLANDI, STATUS_IPTAL},
    STATUS_ULASILAMADI: {STATUS_ARANACAK, STATUS_YANLIS_NUMARA, STATUS_ONAYLANDI, STATUS_IPTAL},
    STATUS_ONAYLANDI: {STATUS_KARGODA, STATUS_IPTAL},
    STATUS_KARGODA: {STATUS_TESLIM_EDILDI, STATUS_IADE},
}

PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PAID = "PAID"


# =============================================================================
# CALL OUTCOMES (CONSTANTS)
# =============================================================================

OUTCOME_REACHED_CONFIRMED = "REACHED_CONFIRMED"
OUTCOME_REACHED_CANCELLED = "REACHED_CANCELLED"
OUTCOME_BUSY = "BUSY"
OUTCOME_UNREACHABLE = "UNREACHABLE"
OUTCOME_WRONG_NUMBER = "WRONG_NUMBER"
OUTCOME_SCHEDULED = "SCHEDULED"

CALL_OUTCOME_STATUS = {
    OUTCOME_REACHED_CONFIRMED: STATUS_ONAYLANDI,
    OUTCOME_REACHED_CANCELLED: STATUS_IPTAL,
    OUTCOME_UNREACHABLE: STATUS_ULASILAMADI,
    OUTCOME_WRONG_NUMBER: STATUS_YANLIS_NUMARA,
    OUTCOME_BUSY: STATUS_ARANACAK,
    OUTCOME_SCHEDULED: STATUS_ARANACAK,
}


# Order log actions
LOG_SYSTEM = "SYSTEM"
LOG_STATUS_CHANGE = "STATUS_CHANGE"
LOG_CALL = "CALL_LOG"
LOG_SHIPPING = "SHIPPING"
LOG_PAYMENT = "PAYMENT"
LOG_NOTE = "NOTE"


class OrderError(Exception):
    """Raised for order operation errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFound(OrderError):
    """Raised when an order id does not exist."""


class InvalidStatus(OrderError):
    """Raised for unknown status names or call outcomes."""


@dataclass
class BulkResult:
    updated: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"updated": list(self.updated), "failed": {str(k): v for k, v in self.failed.items()}}


# =============================================================================
# HELPERS
# =============================================================================

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now: datetime | None = None) -> str:
    """ORD-YYYYMMDD-XXXX with four random base-36 characters."""
    stamp = (now or utcnow()).strftime("%Y%m%d")
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(4))
    return f"ORD-{stamp}-{suffix}"


def allocate_order_number(attempts: int = 20) -> str:
    for _ in range(attempts):
        candidate = generate_order_number()
        exists = db.session.query(Order.id).filter_by(order_number=candidate).first()
        if exists is None:
            return candidate
    raise OrderError("Could not allocate a unique order number")


def generate_tracking_code() -> str:
    return f"TRK{secrets.randbelow(1_000_000):06d}"


def lifecycle_hints(status: str) -> dict:
    """Advisory next statuses for UIs; operators may still force any status."""
    return {
        "suggested_statuses": sorted(SUGGESTED_TRANSITIONS.get(status, ())),
        "is_terminal": status in TERMINAL_STATUSES,
    }


def validate_status(status: str) -> str:
    value = (status or "").strip().upper()
    if value not in VALID_STATUSES:
        raise InvalidStatus(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )
    return value


def _get_order_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", {"order_id": order_id})
    return order


def append_log(order_id: int, message: str, actor: Actor, action: str = LOG_NOTE) -> OrderLog:
    entry = OrderLog(
        order_id=order_id,
        user_id=actor.id,
        user_name=actor.name,
        action=action,
        message=message,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _apply_status(order: Order, new_status: str, actor: Actor, prefix: str, action: str) -> OrderLog:
    """Set status, write the single log entry and the stock side effect."""
    old_status = order.status
    order.status = new_status
    entry = append_log(order.id, f"{prefix}{old_status} to {new_status}", actor, action)

    if new_status != old_status:
        if new_status == STATUS_IPTAL:
            restock_order(order.id, order.order_number, MOVEMENT_CANCEL, actor)
        elif new_status == STATUS_IADE:
            restock_order(order.id, order.order_number, MOVEMENT_RETURN, actor)
        elif old_status in RESTOCKED_STATUSES:
            reserve_order(order.id, order.order_number, order.items, actor)

    return entry


# =============================================================================
# CREATION & READS
# =============================================================================

def create_order(
    *,
    customer: dict,
    item: dict,
    total_amount_cents: int,
    payment_method: str,
    ip_address: str | None,
    user_agent: str | None = None,
    referrer: str | None = None,
    created_message: str,
    actor: Actor,
) -> Order:
    """
    Insert a NEW / UNPAID order with its single item and creation log.

    Flushes only; the caller commits together with the stock movement.
    """
    now = utcnow()
    order = Order(
        order_number=allocate_order_number(),
        customer_name=customer["name"],
        customer_phone=customer["phone"],
        customer_address=customer["address"],
        customer_city=customer["city"],
        customer_district=customer["district"],
        status=STATUS_NEW,
        total_amount_cents=total_amount_cents,
        payment_method=payment_method,
        payment_status=PAYMENT_STATUS_UNPAID,
        ip_address=ip_address,
        user_agent=user_agent,
        referrer=referrer,
        created_at=now,
    )
    db.session.add(order)
    db.session.flush()

    db.session.add(OrderItem(order_id=order.id, **item))
    append_log(order.id, created_message, actor, LOG_SYSTEM)
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", {"order_id": order_id})
    return order


def get_order_logs(order_id: int) -> list[OrderLog]:
    get_order(order_id)
    return (
        db.session.query(OrderLog)
        .filter_by(order_id=order_id)
        .order_by(OrderLog.created_at.desc(), OrderLog.id.desc())
        .all()
    )


def get_call_queue(limit: int = 100) -> list[Order]:
    """Orders still waiting on the call center, oldest first."""
    return (
        db.session.query(Order)
        .filter(Order.status.in_(CALL_QUEUE_STATUSES))
        .order_by(Order.created_at.asc(), Order.id.asc())
        .limit(limit)
        .all()
    )


def recent_order_snapshots(since: datetime) -> list[OrderSnapshot]:
    """Orders created after `since`, reduced to what the fraud scorer reads."""
    rows = (
        db.session.query(Order.ip_address, Order.customer_phone, Order.created_at)
        .filter(Order.created_at > since)
        .all()
    )
    return [OrderSnapshot(ip_address=ip, phone=phone, created_at=created) for ip, phone, created in rows]


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def update_status(order_id: int, status: str, actor: Actor) -> Order:
    """
    Force an order into `status` and log the transition.

    Raises:
        InvalidStatus: unknown status name
        OrderNotFound: no such order
    """
    new_status = validate_status(status)

    def _op():
        order = _get_order_locked(order_id)
        _apply_status(order, new_status, actor, "Status changed from ", LOG_STATUS_CHANGE)
        db.session.commit()
        return order

    return run_with_retry(_op)


def bulk_update_status(order_ids: list[int], status: str, actor: Actor) -> BulkResult:
    """
    Apply update_status to each id independently.

    Each order commits in its own transaction. Missing ids and per-order
    failures are collected in the result instead of aborting the batch.
    """
    new_status = validate_status(status)
    result = BulkResult()

    for order_id in order_ids:
        def _op(order_id=order_id):
            order = _get_order_locked(order_id)
            _apply_status(
                order, new_status, actor,
                "Bulk status update: changed from ", LOG_STATUS_CHANGE,
            )
            db.session.commit()

        try:
            run_with_retry(_op)
        except (OrderError, StockError) as exc:
            db.session.rollback()
            result.failed[order_id] = str(exc)
            continue
        result.updated.append(order_id)

    return result


def record_call_result(
    order_id: int,
    outcome: str,
    actor: Actor,
    *,
    note: str | None = None,
    duration_seconds: int = 0,
) -> Order:
    """
    Store a call-center call and move the order according to its outcome.

    A changed status logs one STATUS_CHANGE entry; an unchanged status
    (e.g. a second BUSY) logs one CALL_LOG entry with the agent's note.
    """
    outcome_value = (outcome or "").strip().upper()
    if outcome_value not in CALL_OUTCOME_STATUS:
        raise InvalidStatus(
            f"Invalid call outcome '{outcome}'. "
            f"Must be one of: {', '.join(sorted(CALL_OUTCOME_STATUS))}"
        )
    if duration_seconds is None or duration_seconds < 0:
        raise OrderError("duration_seconds must be >= 0")

    new_status = CALL_OUTCOME_STATUS[outcome_value]

    def _op():
        order = _get_order_locked(order_id)
        db.session.add(CallLog(
            order_id=order.id,
            agent_id=actor.id,
            agent_name=actor.name,
            outcome=outcome_value,
            duration_seconds=duration_seconds,
            note=note,
            called_at=utcnow(),
        ))

        if order.status != new_status:
            _apply_status(
                order, new_status, actor,
                f"Call result: {outcome_value}. Status changed from ",
                LOG_STATUS_CHANGE,
            )
        else:
            message = f"Call result: {outcome_value}."
            if note:
                message = f"{message} {note}"
            append_log(order.id, message, actor, LOG_CALL)

        db.session.commit()
        return order

    return run_with_retry(_op)


def mark_shipped(order_id: int, actor: Actor, tracking_code: str | None = None) -> Order:
    """Shipment created: force KARGODA and record the tracking code."""
    code = (tracking_code or "").strip() or generate_tracking_code()

    def _op():
        order = _get_order_locked(order_id)
        order.tracking_code = code
        _apply_status(
            order, STATUS_KARGODA, actor,
            f"Shipment created. Tracking: {code}. Status changed from ",
            LOG_SHIPPING,
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def add_note(order_id: int, message: str, actor: Actor) -> OrderLog:
    text = (message or "").strip()
    if not text:
        raise OrderError("message is required")

    def _op():
        order = _get_order_locked(order_id)
        entry = append_log(order.id, text, actor, LOG_NOTE)
        db.session.commit()
        return entry

    return run_with_retry(_op)
