# Overview: Service-layer operations for online card payments; wraps the payment provider collaborator.

"""
Card Payment Service

WHY: CREDIT_CARD orders are charged after intake accepted them. The provider
itself is an external collaborator reached through PaymentGateway.charge().

RULES:
- Only CREDIT_CARD orders can be charged, and only while not already PAID
- Success: payment_status -> PAID; a NEW order advances to ONAYLANDI
- Failure: order fields unchanged
- Either way exactly one PAYMENT entry is appended to the order log
- Card data is handed to the gateway and never persisted or logged
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..extensions import db
from order_gate.actors import Actor
from .concurrency import run_with_retry
from .order_service import (
    LOG_PAYMENT,
    PAYMENT_STATUS_PAID,
    STATUS_NEW,
    STATUS_ONAYLANDI,
    _get_order_locked,
    append_log,
)


PAYMENT_METHOD_CREDIT_CARD = "CREDIT_CARD"
CARD_FIELDS = ("number", "holder", "expiry", "cvv")


class PaymentError(Exception):
    """Raised when an order cannot be charged at all (wrong method, already paid, bad card payload)."""
    pass


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    transaction_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {"success": self.success, "transaction_id": self.transaction_id, "error": self.error}


class PaymentGateway(Protocol):
    def charge(self, order_id: int, amount_cents: int, card: dict) -> ChargeResult:
        ...


class UnconfiguredGateway:
    """Default gateway when no provider is wired; declines every charge."""

    def charge(self, order_id: int, amount_cents: int, card: dict) -> ChargeResult:
        return ChargeResult(success=False, error="No payment provider configured")


def validate_card(card) -> dict:
    if not isinstance(card, dict):
        raise PaymentError("card is required")
    missing = [k for k in CARD_FIELDS if not str(card.get(k) or "").strip()]
    if missing:
        raise PaymentError(f"Missing card fields: {', '.join(missing)}")
    return {k: str(card[k]).strip() for k in CARD_FIELDS}


def process_card_payment(order_id: int, card: dict, gateway: PaymentGateway, actor: Actor) -> ChargeResult:
    """
    Charge a CREDIT_CARD order through the gateway and record the outcome.

    Raises:
        OrderNotFound: no such order
        PaymentError: order not chargeable or card payload incomplete
    """
    card_data = validate_card(card)

    def _op():
        order = _get_order_locked(order_id)
        if order.payment_method != PAYMENT_METHOD_CREDIT_CARD:
            raise PaymentError(f"Order {order.order_number} is not a CREDIT_CARD order")
        if order.payment_status == PAYMENT_STATUS_PAID:
            raise PaymentError(f"Order {order.order_number} is already paid")

        result = gateway.charge(order.id, order.total_amount_cents, card_data)

        if result.success:
            order.payment_status = PAYMENT_STATUS_PAID
            message = f"Payment received. Transaction: {result.transaction_id or '-'}"
            if order.status == STATUS_NEW:
                order.status = STATUS_ONAYLANDI
                message = f"{message}. Status changed from {STATUS_NEW} to {STATUS_ONAYLANDI}"
        else:
            message = f"Payment failed: {result.error or 'declined'}"

        append_log(order.id, message, actor, LOG_PAYMENT)
        db.session.commit()
        return result

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
