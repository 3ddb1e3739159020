# Overview: Input validation for admin payloads and public checkout submissions.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


PAYMENT_METHODS = {"COD", "CREDIT_CARD", "CC_ON_DOOR", "BANK_TRANSFER"}
DEFAULT_PAYMENT_METHOD = "COD"

MAX_NAME_LENGTH = 255
MAX_PHONE_LENGTH = 32
MAX_TEXT_LENGTH = 2000
MAX_SHORT_LENGTH = 128


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns of a model an admin payload may set.

    writable_fields is the allowlist; anything else is rejected outright.
    required lists the fields that must be present.
    """
    writable_fields: frozenset[str]
    required: frozenset[str] = frozenset()


def _coerce_integer(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true/false is never a count or an id
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[1:] if stripped.startswith("-") else stripped
        # Plain digits only: no "1e3", no "12.0"
        if digits.isdecimal():
            return int(stripped)
    raise ValidationError(f"{key} must be an integer")


def _coerce_text(col, value: Any) -> str:
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{col.key} must be a string")
    text = str(value).strip()
    if not text and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    if isinstance(col.type, String) and col.type.length and len(text) > col.type.length:
        raise ValidationError(f"{col.key} exceeds max length {col.type.length}")
    return text


def validate_payload(*, model: DeclarativeMeta, payload: Any, policy: ModelValidationPolicy) -> dict:
    """
    Check an admin JSON body against the policy and the model's columns.

    Integer columns accept ints or digit strings; String/Text columns are
    stripped and length-checked against the column definition. Returns the
    cleaned values keyed by column.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if f not in payload)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in cols:
            raise ValidationError(f"Field not allowed: {key}")
        col = cols[key]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        elif isinstance(col.type, Integer):
            patch[key] = _coerce_integer(key, raw)
        elif isinstance(col.type, (String, Text)):
            patch[key] = _coerce_text(col, raw)
        else:
            raise ValidationError(f"Field not allowed: {key}")

    return patch


def enforce_rules_stock_movement(patch: dict) -> None:
    # Sign comes from type; quantity itself is always a positive count
    quantity = patch.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")


# =============================================================================
# PUBLIC CHECKOUT REQUEST
# =============================================================================

ORDER_REQUEST_FIELDS = {
    "product_id",
    "price_id",
    "name",
    "phone",
    "address",
    "city",
    "district",
    "payment_method",
    "variant_selection",
    "referrer",
    "domain",
}
ORDER_REQUEST_REQUIRED = {"product_id", "price_id", "name", "phone", "address", "city", "district"}


@dataclass(frozen=True)
class OrderRequest:
    """
    Closed, validated checkout submission.

    Only structural checks happen here. Quality heuristics on name and phone
    belong to the fraud scorer so that they are scored and logged, not
    bounced with a descriptive error.
    """
    product_id: int
    price_id: int
    name: str
    phone: str
    address: str
    city: str
    district: str
    ip_address: str
    payment_method: str = DEFAULT_PAYMENT_METHOD
    variant_selection: str | None = None
    user_agent: str | None = None
    referrer: str | None = None

    def form_data(self) -> dict:
        """Submitted form fields, as recorded on fraud security events."""
        return {
            "product_id": self.product_id,
            "price_id": self.price_id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "district": self.district,
            "payment_method": self.payment_method,
            "variant_selection": self.variant_selection,
            "referrer": self.referrer,
        }


def _require_id(payload: dict, key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")


def _require_text(payload: dict, key: str, max_length: int) -> str:
    value = payload.get(key)
    if value is None or not isinstance(value, (str, int)):
        raise ValidationError(f"{key} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{key} cannot be blank")
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def _optional_text(payload: dict, key: str, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text or None


def parse_order_request(
    payload: Any,
    *,
    ip_address: str,
    user_agent: str | None = None,
) -> OrderRequest:
    """Build an OrderRequest from checkout JSON or raise ValidationError."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(k for k in payload if k not in ORDER_REQUEST_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    missing = sorted(k for k in ORDER_REQUEST_REQUIRED if payload.get(k) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    payment_method = _optional_text(payload, "payment_method", 32) or DEFAULT_PAYMENT_METHOD
    payment_method = payment_method.upper()
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}"
        )

    referrer = _optional_text(payload, "referrer", 255) or _optional_text(payload, "domain", 255)

    return OrderRequest(
        product_id=_require_id(payload, "product_id"),
        price_id=_require_id(payload, "price_id"),
        name=_require_text(payload, "name", MAX_NAME_LENGTH),
        phone=_require_text(payload, "phone", MAX_PHONE_LENGTH),
        address=_require_text(payload, "address", MAX_TEXT_LENGTH),
        city=_require_text(payload, "city", MAX_SHORT_LENGTH),
        district=_require_text(payload, "district", MAX_SHORT_LENGTH),
        ip_address=(ip_address or "").strip() or "127.0.0.1",
        payment_method=payment_method,
        variant_selection=_optional_text(payload, "variant_selection", MAX_SHORT_LENGTH),
        user_agent=(user_agent or None) and user_agent[:512],
        referrer=referrer or "Direct",
    )
