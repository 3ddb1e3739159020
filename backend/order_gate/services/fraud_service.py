# Overview: Heuristic fake-order scoring; pure functions over a snapshot of recent orders.

"""
Fraud Scorer

WHY: Cash-on-delivery storefronts pay real shipping costs for fake orders, so
the bar is deliberately low (false positives preferred over false negatives).

SCORING (additive - every rule that fires adds its points):
- Name contains a placeholder token (test, deneme, admin...)     +50
- Name shorter than 3 characters                                 +30
- Name has 4+ identical consecutive characters                   +40
- Phone digits match a known fake pattern                        +80
- Phone has fewer than 10 digits                                 +100
- More than 3 orders from the same IP in the trailing hour       +40
- More than 2 orders from the same phone in the trailing hour    +60

Decision: is_fake when score >= FAKE_THRESHOLD.

The scorer never writes anything. What happens with a score (security event,
auto-blacklist) is decided by the intake service.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from order_gate.time_utils import utcnow


FAKE_THRESHOLD = 50
VELOCITY_WINDOW = timedelta(hours=1)

PLACEHOLDER_NAMES = ("test", "deneme", "asd", "qwe", "admin", "user", "musteri")
FAKE_PHONE_PATTERNS = (
    re.compile(r"^(90)?5555555555$"),
    re.compile(r"^(90)?5\d{2}0000000$"),
    re.compile(r"^(90)?5\d{2}1234567$"),
    re.compile(r"123456"),
    re.compile(r"000000"),
)
REPEATED_CHARS = re.compile(r"(.)\1{3,}")

SCORE_PLACEHOLDER_NAME = 50
SCORE_SHORT_NAME = 30
SCORE_REPEATED_CHARS = 40
SCORE_FAKE_PHONE = 80
SCORE_SHORT_PHONE = 100
SCORE_IP_VELOCITY = 40
SCORE_PHONE_VELOCITY = 60

MAX_ORDERS_PER_IP = 3
MAX_ORDERS_PER_PHONE = 2


@dataclass(frozen=True)
class Candidate:
    name: str
    phone: str
    ip: str | None = None


@dataclass(frozen=True)
class OrderSnapshot:
    """The slice of an existing order the velocity rules look at."""
    ip_address: str | None
    phone: str
    created_at: datetime


@dataclass
class FraudSignal:
    score: int = 0
    reasons: list[str] = field(default_factory=list)

    @property
    def is_fake(self) -> bool:
        return self.score >= FAKE_THRESHOLD

    def add(self, points: int, reason: str) -> None:
        self.score += points
        self.reasons.append(reason)

    def to_dict(self) -> dict:
        return {"score": self.score, "reasons": list(self.reasons), "is_fake": self.is_fake}


def digits_only(phone: str | None) -> str:
    return re.sub(r"\D", "", phone or "")


def normalize_phone(phone: str | None) -> str:
    """Last 10 digits, so "+90 555 ..." and "0555 ..." compare equal."""
    return digits_only(phone)[-10:]


class FraudScorer:
    """Deterministic scorer; safe to share across requests."""

    def __init__(self, *, velocity_window: timedelta = VELOCITY_WINDOW) -> None:
        self.velocity_window = velocity_window

    def score(
        self,
        candidate: Candidate,
        recent_orders: Iterable[OrderSnapshot],
        *,
        now: datetime | None = None,
    ) -> FraudSignal:
        signal = FraudSignal()

        lower_name = (candidate.name or "").strip().lower()
        clean_phone = digits_only(candidate.phone)

        if any(token in lower_name for token in PLACEHOLDER_NAMES):
            signal.add(SCORE_PLACEHOLDER_NAME, "Suspicious name pattern detected (e.g. test, deneme)")
        if len(lower_name) < 3:
            signal.add(SCORE_SHORT_NAME, "Name too short")
        if REPEATED_CHARS.search(lower_name):
            signal.add(SCORE_REPEATED_CHARS, "Name contains repetitive characters")

        if any(pattern.search(clean_phone) for pattern in FAKE_PHONE_PATTERNS):
            signal.add(SCORE_FAKE_PHONE, "Phone number matches known fake patterns")
        if len(clean_phone) < 10:
            signal.add(SCORE_SHORT_PHONE, "Invalid phone number length")

        cutoff = (now or utcnow()) - self.velocity_window
        window = [o for o in recent_orders if o.created_at > cutoff]

        if candidate.ip:
            ip_count = sum(1 for o in window if o.ip_address == candidate.ip)
            if ip_count > MAX_ORDERS_PER_IP:
                signal.add(SCORE_IP_VELOCITY, f"High velocity: {ip_count} orders from same IP in 1 hour")

        phone_key = normalize_phone(candidate.phone)
        if phone_key:
            phone_count = sum(1 for o in window if normalize_phone(o.phone) == phone_key)
            if phone_count > MAX_ORDERS_PER_PHONE:
                signal.add(
                    SCORE_PHONE_VELOCITY,
                    f"High velocity: {phone_count} orders with same phone in 1 hour",
                )

        return signal
