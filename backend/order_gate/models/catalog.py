from __future__ import annotations

from ..extensions import db
from order_gate.time_utils import to_utc_z


class Product(db.Model):
    """
    Minimal product record needed by order intake.

    Catalog management lives elsewhere; intake only resolves a product,
    one of its price tiers and, optionally, one of its variants.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    prices = db.relationship(
        "ProductPrice", backref="product", lazy=True, order_by="ProductPrice.quantity"
    )
    variants = db.relationship(
        "ProductVariant", backref="product", lazy=True, order_by="ProductVariant.id"
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "prices": [p.to_dict() for p in self.prices],
            "variants": [v.to_dict() for v in self.variants],
            "created_at": to_utc_z(self.created_at),
        }


class ProductPrice(db.Model):
    """
    Price tier: buy `quantity` units for `price_cents` total (e.g. "2 for 1").
    """
    __tablename__ = "product_prices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Authoritative storage in cents; total for the whole tier
    price_cents = db.Column(db.Integer, nullable=False)
    label = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "label": self.label,
        }


class ProductVariant(db.Model):
    """
    Sellable variant (size, colour...).

    `stock` is a projection of the stock ledger. It is only ever written by
    stock_service.post_movement, in the same transaction as the movement.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "variant_name", name="uq_variants_product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_name = db.Column(db.String(128), nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_name": self.variant_name,
            "stock": self.stock,
        }
