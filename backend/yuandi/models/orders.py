from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order.

    LIFECYCLE (order_service.ALLOWED_TRANSITIONS):
    PAID -> SHIPPED -> DONE
    PAID -> CANCELLED
    PAID | SHIPPED -> REFUNDED
    DONE, CANCELLED and REFUNDED are terminal.

    Status is only changed by order_service, always in the same transaction
    as the stock movements and cashbook entries the transition implies.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_no = db.Column(db.String(32), nullable=False, unique=True)

    customer_name = db.Column(db.String(128), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    # Korean personal customs clearance code
    pccc_code = db.Column(db.String(32), nullable=True)
    shipping_address = db.Column(db.String(255), nullable=True)
    zip_code = db.Column(db.String(16), nullable=True)
    customer_memo = db.Column(db.Text, nullable=True)

    currency = db.Column(db.String(3), nullable=False, default="KRW")
    total_amount = db.Column(db.Integer, nullable=False)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PAID", index=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    completion_note = db.Column(db.String(255), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)
    refund_note = db.Column(db.String(255), nullable=True)
    refund_amount = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")
    shipments = db.relationship("Shipment", backref="order", lazy=True, order_by="Shipment.id")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_no={self.order_no!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_no": self.order_no,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "pccc_code": self.pccc_code,
            "shipping_address": self.shipping_address,
            "zip_code": self.zip_code,
            "customer_memo": self.customer_memo,
            "currency": self.currency,
            "total_amount": self.total_amount,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "completion_note": self.completion_note,
            "refund_reason": self.refund_reason,
            "refund_note": self.refund_note,
            "refund_amount": self.refund_amount,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["shipments"] = [s.to_dict() for s in self.shipments]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot of product identity at order time
    sku = db.Column(db.String(128), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
        }


class Shipment(db.Model):
    """Tracking registration that moves an order from PAID to SHIPPED."""
    __tablename__ = "shipments"
    __table_args__ = (
        db.Index("ix_shipments_tracking", "courier", "tracking_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    courier = db.Column(db.String(32), nullable=False)
    tracking_number = db.Column(db.String(64), nullable=False)
    tracking_url = db.Column(db.String(512), nullable=True)

    # KRW; recorded as a shipping_cost expense when present
    shipping_fee = db.Column(db.Integer, nullable=True)
    shipment_note = db.Column(db.String(255), nullable=True)

    shipped_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "courier": self.courier,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "shipping_fee": self.shipping_fee,
            "shipment_note": self.shipment_note,
            "shipped_at": to_utc_z(self.shipped_at),
        }


class OrderSequence(db.Model):
    """Per-business-day counter backing ORD-YYMMDD-### order numbers."""
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("sequence_date", name="uq_order_sequences_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
