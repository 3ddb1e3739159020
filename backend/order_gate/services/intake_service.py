# Overview: Public checkout admission gate; rate limit -> blacklist -> fraud score -> order creation.

"""
Order Intake Service

PIPELINE (sequential, short-circuits at the first failure, cheapest first):
1. Rate limiter on the client IP      -> SecurityEvent(RATE_LIMIT, MEDIUM)          -> RateLimited
2. Blacklist on the client IP         -> SecurityEvent(BLACKLIST_BLOCK, HIGH)       -> Blacklisted
3. Fraud score vs trailing-hour orders -> SecurityEvent(FAKE_ORDER_ATTEMPT, CRITICAL) -> FraudRejected
   (score above the auto-block threshold also blacklists the IP, so the
   next request stops at step 2 instead of being scored again)
4. Create the order (NEW / UNPAID), its creation log and the OUT stock
   movement in ONE transaction

RULES:
- A rejected request never creates an order or touches stock
- Security events (and an auto-blacklist entry) are committed even though
  the request itself fails
- Every rejection carries the same public message; the reasons stay in
  the security event
- Steps 2-4 for one IP run under that IP's lock so concurrent requests
  cannot both auto-blacklist or both slip past the velocity rules
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Order
from ..models.security import (
    EVENT_RATE_LIMIT,
    EVENT_BLACKLIST_BLOCK,
    EVENT_FAKE_ORDER_ATTEMPT,
    RISK_MEDIUM,
    RISK_HIGH,
    RISK_CRITICAL,
)
from ..validation import OrderRequest
from order_gate.actors import SYSTEM_ACTOR, SYSTEM_ORDER_ACTOR
from order_gate.time_utils import utcnow
from . import catalog_service, order_service, security_event_service
from .blacklist_service import AUTO_BLOCK_ACTOR, AUTO_BLOCK_REASON, BlacklistStore
from .concurrency import KeyedLocks, run_with_retry
from .fraud_service import Candidate, FraudScorer, FraudSignal
from .rate_limit_service import RateLimiter
from .stock_service import MOVEMENT_OUT, post_movement


PUBLIC_REJECTION_MESSAGE = "Order verification failed. Please check your details."
ORDER_CREATED_MESSAGE = "Order created via landing page"
DEFAULT_AUTO_BLOCK_SCORE = 90


class IntakeRejected(Exception):
    """Base for admission-gate rejections. str() is always the public message."""
    code = "REJECTED"
    http_status = 400

    def __init__(self, ip_address: str):
        super().__init__(PUBLIC_REJECTION_MESSAGE)
        self.ip_address = ip_address
        self.public_message = PUBLIC_REJECTION_MESSAGE


class RateLimited(IntakeRejected):
    """Transient: the caller may retry once the window resets."""
    code = "RATE_LIMITED"
    http_status = 429

    def __init__(self, ip_address: str, retry_after: int = 0):
        super().__init__(ip_address)
        self.retry_after = retry_after


class Blacklisted(IntakeRejected):
    """Permanent until an operator removes the blacklist entry."""
    code = "BLACKLISTED"


class FraudRejected(IntakeRejected):
    """Permanent for this submission; the IP is only banned if auto-escalated."""
    code = "FRAUD_REJECTED"

    def __init__(self, ip_address: str, signal: FraudSignal, auto_blocked: bool = False):
        super().__init__(ip_address)
        self.signal = signal
        self.auto_blocked = auto_blocked


class OrderIntakeService:
    """Composes the admission gates with order creation."""

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        blacklist: BlacklistStore,
        scorer: FraudScorer,
        auto_block_score: int = DEFAULT_AUTO_BLOCK_SCORE,
        ip_locks: KeyedLocks | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.blacklist = blacklist
        self.scorer = scorer
        self.auto_block_score = auto_block_score
        self._ip_locks = ip_locks if ip_locks is not None else KeyedLocks()

    # -------------------------------------------------------------------------
    # Public entry point
    # -------------------------------------------------------------------------

    def admit(self, ip: str, user_agent: str | None = None) -> None:
        """
        Count one request against the rate limiter.

        Routes call this before parsing the payload so malformed submissions
        spend the same budget as well-formed ones.
        """
        if not self.rate_limiter.allow(ip):
            self._record_event(
                event_type=EVENT_RATE_LIMIT,
                risk_level=RISK_MEDIUM,
                description="Too many order requests (Rate Limit Exceeded)",
                ip_address=ip,
                user_agent=user_agent,
            )
            current_app.logger.warning("Order intake rate limited ip=%s", ip)
            raise RateLimited(ip, retry_after=self.rate_limiter.retry_after(ip))

    def submit(self, request: OrderRequest, *, admitted: bool = False) -> Order:
        ip = request.ip_address

        if not admitted:
            self.admit(ip, request.user_agent)

        with self._ip_locks.hold(ip):
            if self.blacklist.is_blocked(ip):
                self._record_event(
                    event_type=EVENT_BLACKLIST_BLOCK,
                    risk_level=RISK_HIGH,
                    description="Blocked order attempt from blacklisted IP",
                    ip_address=ip,
                    user_agent=request.user_agent,
                )
                current_app.logger.warning("Order intake blocked by blacklist ip=%s", ip)
                raise Blacklisted(ip)

            signal = self._score(request)
            if signal.is_fake:
                auto_blocked = self._reject_fraud(request, signal)
                raise FraudRejected(ip, signal, auto_blocked=auto_blocked)

            return self._create(request)

    # -------------------------------------------------------------------------
    # Gates
    # -------------------------------------------------------------------------

    def _record_event(self, *, event_type: str, risk_level: str, description: str,
                      ip_address: str, user_agent: str | None) -> None:
        def _op():
            security_event_service.log_event(
                event_type=event_type,
                risk_level=risk_level,
                description=description,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            db.session.commit()

        run_with_retry(_op)

    def _score(self, request: OrderRequest) -> FraudSignal:
        now = utcnow()
        window_start = now - self.scorer.velocity_window
        recent = order_service.recent_order_snapshots(window_start)
        candidate = Candidate(name=request.name, phone=request.phone, ip=request.ip_address)
        return self.scorer.score(candidate, recent, now=now)

    def _reject_fraud(self, request: OrderRequest, signal: FraudSignal) -> bool:
        auto_block = signal.score > self.auto_block_score

        def _op():
            security_event_service.log_event(
                event_type=EVENT_FAKE_ORDER_ATTEMPT,
                risk_level=RISK_CRITICAL,
                description=f"Fake order blocked. Score: {signal.score}",
                ip_address=request.ip_address,
                user_agent=request.user_agent,
                details={
                    "score": signal.score,
                    "reasons": list(signal.reasons),
                    "formData": request.form_data(),
                },
            )
            if auto_block:
                self.blacklist.add(request.ip_address, AUTO_BLOCK_REASON, AUTO_BLOCK_ACTOR)
            db.session.commit()

        run_with_retry(_op)

        current_app.logger.warning(
            "Order intake rejected as fake ip=%s score=%s auto_blocked=%s",
            request.ip_address, signal.score, auto_block,
        )
        return auto_block

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _create(self, request: OrderRequest) -> Order:
        def _op():
            try:
                product = catalog_service.get_active_product(request.product_id)
                price = catalog_service.resolve_price(product, request.price_id)
                variant = catalog_service.resolve_variant(product, request.variant_selection)

                quantity = price.quantity
                order = order_service.create_order(
                    customer={
                        "name": request.name,
                        "phone": request.phone,
                        "address": request.address,
                        "city": request.city,
                        "district": request.district,
                    },
                    item={
                        "product_id": product.id,
                        "price_id": price.id,
                        "variant_id": variant.id if variant else None,
                        "variant_selection": variant.variant_name if variant else request.variant_selection,
                        "quantity": quantity,
                        "unit_price_cents": catalog_service.unit_price_cents(price.price_cents, quantity),
                        "total_price_cents": price.price_cents,
                    },
                    total_amount_cents=price.price_cents,
                    payment_method=request.payment_method,
                    ip_address=request.ip_address,
                    user_agent=request.user_agent,
                    referrer=request.referrer,
                    created_message=ORDER_CREATED_MESSAGE,
                    actor=SYSTEM_ACTOR,
                )

                if variant is not None:
                    post_movement(
                        product_id=product.id,
                        variant_id=variant.id,
                        quantity=quantity,
                        movement_type=MOVEMENT_OUT,
                        actor=SYSTEM_ORDER_ACTOR,
                        note=f"Order #{order.order_number}",
                        order_id=order.id,
                    )

                db.session.commit()
                return order
            except Exception:
                db.session.rollback()
                raise

        order = run_with_retry(_op)
        current_app.logger.info("Order %s created ip=%s", order.order_number, request.ip_address)
        return order


def build_intake_service(app, rate_limiter: RateLimiter) -> OrderIntakeService:
    """Wire the intake service from app config."""
    scorer = FraudScorer(
        velocity_window=timedelta(seconds=app.config.get("FRAUD_VELOCITY_WINDOW_SECONDS", 3600)),
    )
    return OrderIntakeService(
        rate_limiter=rate_limiter,
        blacklist=BlacklistStore(),
        scorer=scorer,
        auto_block_score=app.config.get("FRAUD_AUTO_BLOCK_SCORE", DEFAULT_AUTO_BLOCK_SCORE),
    )
