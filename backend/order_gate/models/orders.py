from __future__ import annotations

from ..extensions import db
from order_gate.time_utils import to_utc_z


class Order(db.Model):
    """
    Order accepted through the intake gate.

    Created exactly once by the intake service. After creation the status
    changes only through order_service; order_number, the customer snapshot
    and created_at never change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_ip_created", "ip_address", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g. "ORD-20261019-K3ZQ")
    order_number = db.Column(db.String(32), nullable=False)

    # Customer snapshot at checkout time
    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_address = db.Column(db.Text, nullable=False)
    customer_city = db.Column(db.String(128), nullable=False)
    customer_district = db.Column(db.String(128), nullable=False)

    status = db.Column(db.String(32), nullable=False, default="NEW", index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="COD")
    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    # Request context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    referrer = db.Column(db.String(255), nullable=True)

    tracking_code = db.Column(db.String(64), nullable=True)
    dealer_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "address": self.customer_address,
                "city": self.customer_city,
                "district": self.customer_district,
            },
            "items": [item.to_dict() for item in self.items],
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "ip_address": self.ip_address,
            "referrer": self.referrer,
            "tracking_code": self.tracking_code,
            "dealer_id": self.dealer_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderItem(db.Model):
    """Line on an order; intake always creates exactly one."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    price_id = db.Column(db.Integer, db.ForeignKey("product_prices.id"), nullable=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    variant_selection = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "price_id": self.price_id,
            "variant_id": self.variant_id,
            "variant_selection": self.variant_selection,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class OrderLog(db.Model):
    """
    Per-order audit trail.

    IMMUTABLE: every transition, note, call, payment or shipment that touches
    an order appends exactly one row. Rows are never updated or deleted.
    """
    __tablename__ = "order_logs"
    __table_args__ = (
        db.Index("ix_order_logs_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    user_id = db.Column(db.String(64), nullable=False)
    user_name = db.Column(db.String(128), nullable=False)

    # SYSTEM, STATUS_CHANGE, CALL_LOG, SHIPPING, PAYMENT, NOTE
    action = db.Column(db.String(32), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "action": self.action,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
        }


class CallLog(db.Model):
    """One call-center call placed for an order."""
    __tablename__ = "call_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    agent_id = db.Column(db.String(64), nullable=False)
    agent_name = db.Column(db.String(128), nullable=False)
    outcome = db.Column(db.String(32), nullable=False, index=True)
    duration_seconds = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.Text, nullable=True)
    called_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "outcome": self.outcome,
            "duration_seconds": self.duration_seconds,
            "note": self.note,
            "called_at": to_utc_z(self.called_at),
        }
