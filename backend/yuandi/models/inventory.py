from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK OWNERSHIP:
    Product.on_hand is the only mutable stock counter in the system and is
    written exclusively by inventory_service.apply_stock_delta, which appends
    an InventoryMovement in the same transaction. Any other writer would break
    the replay invariant (on_hand == SUM(movements.delta)).

    SKU:
    Derived from category/model/color/brand plus a short hash
    (see product_service.generate_sku). Unique across the catalogue.

    LIFECYCLE:
    Products are soft-deleted (is_active=False) and never hard-deleted once
    they carry movement history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("on_hand >= 0", name="ck_products_on_hand_nonneg"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(128), nullable=False, unique=True)
    category = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    model = db.Column(db.String(128), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(128), nullable=True)

    # Purchase cost per unit in CNY, sale price in KRW (whole units, no cents)
    cost_cny = db.Column(db.Integer, nullable=True)
    sale_price_krw = db.Column(db.Integer, nullable=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)

    # NULL means "use the inventory.low_stock_threshold_default setting"
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} on_hand={self.on_hand}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "category": self.category,
            "name": self.name,
            "model": self.model,
            "color": self.color,
            "brand": self.brand,
            "cost_cny": self.cost_cny,
            "sale_price_krw": self.sale_price_krw,
            "on_hand": self.on_hand,
            "low_stock_threshold": self.low_stock_threshold,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock audit trail.

    One row per Stock Mutator call. balance_after = balance_before + delta,
    and for a given product each row's balance_before equals the previous
    row's balance_after.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("delta <> 0", name="ck_movements_delta_nonzero"),
        db.CheckConstraint("balance_after = balance_before + delta", name="ck_movements_balance"),
        db.Index("ix_movements_product_id_order", "product_id", "id"),
        db.Index("ix_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # inbound | sale | adjustment | disposal | refund_restock
    movement_type = db.Column(db.String(32), nullable=False, index=True)

    delta = db.Column(db.Integer, nullable=False)
    balance_before = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    # order | order_cancel | order_refund | manual | inbound
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    unit_cost = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "delta": self.delta,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "unit_cost": self.unit_cost,
            "note": self.note,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(InventoryMovement, "before_update")
def _movement_is_immutable(mapper, connection, target):
    raise ValueError("inventory movements are append-only")


@event.listens_for(InventoryMovement, "before_delete")
def _movement_cannot_be_deleted(mapper, connection, target):
    raise ValueError("inventory movements are append-only")
