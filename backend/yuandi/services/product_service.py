# Overview: Product registration (SKU derivation), listing and soft delete.

from __future__ import annotations

import hashlib
import re
import secrets

from ..errors import ProductNotFoundError, PersistenceError
from ..extensions import db
from ..models import Product
from .concurrency import run_in_transaction
from .event_log_service import append_event
from .inventory_service import _receive_inbound_inner

PRODUCT_MUTABLE_FIELDS = {
    "category", "name", "model", "color", "brand",
    "cost_cny", "sale_price_krw", "low_stock_threshold",
}

# Per-part limits for the derived SKU; order is the SKU order
SKU_PARTS = (("category", 20), ("model", 30), ("color", 20), ("brand", 20))
SKU_HASH_LENGTH = 5
SKU_MAX_ATTEMPTS = 10

_SKU_STRIP = re.compile(r"[^A-Za-z0-9가-힣]")


def _sku_part(value, limit: int) -> str:
    if not value:
        return ""
    return _SKU_STRIP.sub("", str(value))[:limit].upper()


def generate_sku(*, category, model=None, color=None, brand=None) -> str:
    """
    CATEGORY-MODEL-COLOR-BRAND-HASH5.

    Parts keep only ASCII letters, digits and Hangul syllables; empty parts
    are skipped. The hash is salted with a random nonce, so two products with
    identical attributes still get distinct SKUs.
    """
    values = {"category": category, "model": model, "color": color, "brand": brand}
    parts = [p for p in (_sku_part(values[key], limit) for key, limit in SKU_PARTS) if p]

    nonce = secrets.token_hex(8)
    digest = hashlib.sha256(("|".join(parts) + "|" + nonce).encode("utf-8")).hexdigest().upper()
    parts.append(digest[:SKU_HASH_LENGTH])
    return "-".join(parts)


def _unique_sku(patch: dict) -> str:
    for _ in range(SKU_MAX_ATTEMPTS):
        sku = generate_sku(
            category=patch.get("category"),
            model=patch.get("model"),
            color=patch.get("color"),
            brand=patch.get("brand"),
        )
        exists = db.session.query(Product.id).filter_by(sku=sku).first()
        if exists is None:
            return sku
    raise PersistenceError("Could not allocate a unique SKU; retry the request")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def create_product(
    *,
    patch: dict,
    initial_stock: int | None = None,
    actor_user_id: int | None = None,
) -> Product:
    """
    Register a product from a validated patch dict.

    An initial_stock > 0 is booked as an inbound movement (and purchase
    expense when cost_cny is set) in the same transaction, so the product
    never exists with stock that has no movement behind it.
    """
    def _op():
        p = Product(on_hand=0, is_active=True)
        apply_product_patch(p, patch)
        p.sku = _unique_sku(patch)
        db.session.add(p)
        db.session.flush()

        append_event(
            table_name="products",
            record_id=p.id,
            action="create",
            actor_user_id=actor_user_id,
            payload={"sku": p.sku, "name": p.name},
        )

        if initial_stock:
            _receive_inbound_inner(
                product_id=p.id,
                quantity=initial_stock,
                unit_cost=None,
                currency="CNY",
                ref_no=None,
                note="Initial stock",
                actor_user_id=actor_user_id,
            )
        return p

    return run_in_transaction(_op)


def list_products(*, include_inactive: bool = False, search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(Product.name.ilike(like) | Product.sku.ilike(like))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def soft_delete_product(*, product_id: int, actor_user_id: int | None = None) -> Product:
    """Deactivate a product; rows with movement history are never removed."""
    def _op():
        p = db.session.query(Product).filter_by(id=product_id).first()
        if p is None:
            raise ProductNotFoundError(product_id)
        if p.is_active:
            p.is_active = False
            append_event(
                table_name="products",
                record_id=p.id,
                action="deactivate",
                actor_user_id=actor_user_id,
                payload={"sku": p.sku},
            )
        return p

    return run_in_transaction(_op)
