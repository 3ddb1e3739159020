# Overview: Read-side catalog lookups used by order intake, plus demo seeding for the CLI.

from __future__ import annotations

from ..extensions import db
from ..models import Product, ProductPrice, ProductVariant
from ..validation import ValidationError
from order_gate.actors import Actor
from .stock_service import MOVEMENT_IN, post_movement


class ProductNotFound(LookupError):
    """Product, price tier or variant missing; a data error, not a security event."""


def get_active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise ProductNotFound(f"Product {product_id} not found")
    return product


def resolve_price(product: Product, price_id: int) -> ProductPrice:
    price = (
        db.session.query(ProductPrice)
        .filter_by(id=price_id, product_id=product.id)
        .first()
    )
    if price is None:
        raise ProductNotFound(f"Price {price_id} not found for product {product.id}")
    if price.quantity is None or price.quantity <= 0:
        raise ProductNotFound(f"Price {price_id} has no sellable quantity")
    return price


def resolve_variant(product: Product, variant_selection: str | None) -> ProductVariant | None:
    """
    Pick the variant whose stock an order draws from.

    - explicit selection: must match a variant name of the product
    - no selection, exactly one variant: that variant
    - no selection, no variants: None (product has no stock tracking)
    - no selection, several variants: the customer has to choose
    """
    variants = list(product.variants)

    if variant_selection:
        for variant in variants:
            if variant.variant_name == variant_selection:
                return variant
        raise ProductNotFound(
            f"Variant '{variant_selection}' not found for product {product.id}"
        )

    if not variants:
        return None
    if len(variants) == 1:
        return variants[0]
    raise ValidationError("variant_selection is required for this product")


def unit_price_cents(total_cents: int, quantity: int) -> int:
    # nearest-cent rounding (half-up)
    return (total_cents + (quantity // 2)) // quantity


def seed_demo_catalog(actor: Actor) -> Product:
    """Create a demo product with three price tiers and two stocked variants."""
    product = Product(name="Demo Product", is_active=True)
    db.session.add(product)
    db.session.flush()

    for quantity, price_cents, label in ((1, 49900, "Single"), (2, 79900, "Best Value"), (3, 99900, "Family Pack")):
        db.session.add(ProductPrice(product_id=product.id, quantity=quantity, price_cents=price_cents, label=label))

    for name in ("Black", "White"):
        variant = ProductVariant(product_id=product.id, variant_name=name)
        db.session.add(variant)
        db.session.flush()
        post_movement(
            product_id=product.id,
            variant_id=variant.id,
            quantity=100,
            movement_type=MOVEMENT_IN,
            actor=actor,
            note="Initial stock",
        )

    db.session.commit()
    return product
