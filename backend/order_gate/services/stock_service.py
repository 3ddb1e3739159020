# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

Inventory model:
- Stock is ledger-derived from StockMovement rows.
- Variant stock = SUM(quantity) for IN/RETURN/CANCEL minus SUM(quantity) for OUT.
- ProductVariant.stock is a projection, written only by post_movement() in the
  same DB transaction as the movement it reflects.

Business rules:
- quantity is a positive integer; the sign comes from the movement type.
- The variant must belong to the product named on the movement.
- Negative resulting stock is ALLOWED. An oversell shows up as a negative
  number for operators; it is never rejected or clamped here.

Transactions:
- post_movement() flushes but does not commit, so order intake can create the
  order and its OUT movement atomically. Standalone callers use
  post_movement_and_commit().
"""

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import ProductVariant, StockMovement
from order_gate.actors import Actor
from order_gate.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_CANCEL = "CANCEL"

VALID_MOVEMENT_TYPES = {MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_RETURN, MOVEMENT_CANCEL}


class StockError(ValueError):
    """Raised for invalid stock movements."""


def signed_quantity(movement_type: str, quantity: int) -> int:
    if movement_type == MOVEMENT_OUT:
        return -quantity
    return quantity


def post_movement(
    *,
    product_id: int,
    variant_id: int,
    quantity: int,
    movement_type: str,
    actor: Actor,
    note: str | None = None,
    order_id: int | None = None,
) -> StockMovement:
    """
    Append a movement and adjust the variant projection.

    Raises:
        StockError: invalid type, non-positive quantity, unknown variant,
            or variant not belonging to product
    """
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise StockError(
            f"Invalid movement type '{movement_type}'. "
            f"Must be one of: {', '.join(sorted(VALID_MOVEMENT_TYPES))}"
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise StockError("quantity must be a positive integer")

    variant = lock_for_update(
        db.session.query(ProductVariant).filter_by(id=variant_id)
    ).first()
    if variant is None:
        raise StockError(f"Variant {variant_id} not found")
    if variant.product_id != product_id:
        raise StockError(f"Variant {variant_id} does not belong to product {product_id}")

    movement = StockMovement(
        product_id=product_id,
        variant_id=variant_id,
        order_id=order_id,
        type=movement_type,
        quantity=quantity,
        note=note,
        user_id=actor.id,
        user_name=actor.name,
        created_at=utcnow(),
    )
    db.session.add(movement)

    variant.stock = (variant.stock or 0) + signed_quantity(movement_type, quantity)

    db.session.flush()
    return movement


def post_movement_and_commit(**kwargs) -> StockMovement:
    def _op():
        movement = post_movement(**kwargs)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def _signed_sum():
    return func.coalesce(
        func.sum(
            case(
                (StockMovement.type == MOVEMENT_OUT, -StockMovement.quantity),
                else_=StockMovement.quantity,
            )
        ),
        0,
    )


def get_variant_stock(variant_id: int) -> int:
    """Stock derived from the ledger (the source of truth)."""
    q = db.session.query(_signed_sum()).filter(StockMovement.variant_id == variant_id)
    return int(q.scalar() or 0)


def outstanding_for_order(order_id: int) -> dict[tuple[int, int], int]:
    """
    Units shipped out for an order and not yet restocked, per (product, variant).

    OUT adds to the outstanding amount; CANCEL and RETURN for the same order
    reduce it. Used so a cancelled or returned order restocks at most once.
    """
    rows = (
        db.session.query(
            StockMovement.product_id,
            StockMovement.variant_id,
            func.coalesce(
                func.sum(
                    case(
                        (StockMovement.type == MOVEMENT_OUT, StockMovement.quantity),
                        (StockMovement.type.in_([MOVEMENT_CANCEL, MOVEMENT_RETURN]), -StockMovement.quantity),
                        else_=0,
                    )
                ),
                0,
            ).label("outstanding"),
        )
        .filter(StockMovement.order_id == order_id)
        .group_by(StockMovement.product_id, StockMovement.variant_id)
        .all()
    )
    return {(row.product_id, row.variant_id): int(row.outstanding) for row in rows if row.outstanding > 0}


def restock_order(order_id: int, order_number: str, movement_type: str, actor: Actor) -> list[StockMovement]:
    """Post CANCEL/RETURN movements for whatever the order still holds."""
    if movement_type not in (MOVEMENT_CANCEL, MOVEMENT_RETURN):
        raise StockError("restock requires CANCEL or RETURN")

    label = "cancelled" if movement_type == MOVEMENT_CANCEL else "returned"
    movements = []
    for (product_id, variant_id), quantity in outstanding_for_order(order_id).items():
        movements.append(
            post_movement(
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                movement_type=movement_type,
                actor=actor,
                note=f"Order #{order_number} {label}",
                order_id=order_id,
            )
        )
    return movements


def reserve_order(order_id: int, order_number: str, items, actor: Actor) -> list[StockMovement]:
    """Post OUT movements so a reopened order holds its items again."""
    held = outstanding_for_order(order_id)
    movements = []
    for item in items:
        if item.variant_id is None:
            continue
        missing = item.quantity - held.get((item.product_id, item.variant_id), 0)
        if missing <= 0:
            continue
        movements.append(
            post_movement(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=missing,
                movement_type=MOVEMENT_OUT,
                actor=actor,
                note=f"Order #{order_number} reopened",
                order_id=order_id,
            )
        )
    return movements


def list_movements(
    *,
    product_id: int | None = None,
    variant_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if variant_id is not None:
        q = q.filter(StockMovement.variant_id == variant_id)
    return (
        q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(max(1, min(limit, 1000)))
        .all()
    )


def reconcile() -> list[dict]:
    """
    Compare every variant projection against its ledger sum.

    Returns one row per variant that drifted; an empty list means the
    projection is consistent.
    """
    ledger = dict(
        db.session.query(StockMovement.variant_id, _signed_sum())
        .group_by(StockMovement.variant_id)
        .all()
    )
    drift = []
    for variant in db.session.query(ProductVariant).order_by(ProductVariant.id).all():
        expected = int(ledger.get(variant.id, 0) or 0)
        if (variant.stock or 0) != expected:
            drift.append({
                "variant_id": variant.id,
                "product_id": variant.product_id,
                "projected": variant.stock,
                "ledger": expected,
            })
    return drift
