from __future__ import annotations

from ..extensions import db
from order_gate.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    Variant stock is SUM(+IN, +RETURN, +CANCEL, -OUT) over these rows;
    ProductVariant.stock is only a projection of that sum.
    quantity is always positive; the sign comes from type.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_variant_created", "variant_id", "created_at"),
        db.Index("ix_stock_movements_order_type", "order_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    # IN, OUT, RETURN, CANCEL
    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.String(64), nullable=False)
    user_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "order_id": self.order_id,
            "type": self.type,
            "quantity": self.quantity,
            "note": self.note,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }
