# Overview: Service-layer operations for inventory; the only writer of Product.on_hand.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func

from ..errors import ProductNotFoundError, InsufficientStockError
from ..extensions import db
from ..models import Product, InventoryMovement
from ..time_utils import utcnow
from ..validation import ValidationError, MAX_QUANTITY
from .cashbook_service import record_entry, ENTRY_TYPE_EXPENSE, CATEGORY_INVENTORY_PURCHASE, CATEGORY_ADJUSTMENT
from .concurrency import lock_for_update, run_in_transaction
from .event_log_service import append_event
from .settings_service import get_settings_store
"""
Inventory Invariants (authoritative)

Stock model:
- Product.on_hand is a stored counter, kept equal to SUM(delta) over the
  product's InventoryMovement rows.
- Every change goes through apply_stock_delta(), which locks the product row,
  writes the new on_hand and appends exactly one movement in the same
  transaction. Nothing else assigns on_hand.

Business invariants:
- on_hand >= 0 after every committed change (also a DB CHECK constraint).
- balance_after = balance_before + delta on every movement, and movements of
  one product chain: balance_before equals the previous balance_after.
- Movements are append-only (mapper guards reject update/delete).

Transactions:
- apply_stock_delta() only flushes, so order transitions can compose several
  stock changes and cashbook entries into one commit.
- Public operations (adjust_stock, receive_inbound) wrap their work in
  run_in_transaction(); any failure rolls back every write.
"""


MOVEMENT_INBOUND = "inbound"
MOVEMENT_SALE = "sale"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_DISPOSAL = "disposal"
MOVEMENT_REFUND_RESTOCK = "refund_restock"
MOVEMENT_TYPES = (
    MOVEMENT_INBOUND,
    MOVEMENT_SALE,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_DISPOSAL,
    MOVEMENT_REFUND_RESTOCK,
)

REFERENCE_TYPES = ("order", "order_cancel", "order_refund", "manual", "inbound")


@dataclass(frozen=True)
class StockAdjustment:
    previous_stock: int
    new_stock: int
    movement_id: int

    def to_dict(self) -> dict:
        return {
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "movement_id": self.movement_id,
        }


@dataclass
class LedgerVerification:
    """Result of replaying a product's movements from zero."""
    product_id: int
    on_hand: int
    replayed_balance: int = 0
    movement_count: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems and self.replayed_balance == self.on_hand

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "on_hand": self.on_hand,
            "replayed_balance": self.replayed_balance,
            "movement_count": self.movement_count,
            "ok": self.ok,
            "problems": list(self.problems),
        }


def _load_product(product_id: int, *, require_active: bool = False, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    if require_active and not product.is_active:
        raise ProductNotFoundError(product_id)
    return product


def low_stock_threshold_for(product: Product) -> int:
    if product.low_stock_threshold is not None:
        return product.low_stock_threshold
    return int(get_settings_store().get("inventory.low_stock_threshold_default"))


def _check_delta(delta) -> None:
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if abs(delta) > MAX_QUANTITY:
        raise ValidationError(f"delta magnitude cannot exceed {MAX_QUANTITY}")


def apply_stock_delta(
    *,
    product_id: int,
    delta: int,
    movement_type: str,
    reference_type: str | None = None,
    reference_id=None,
    note: str | None = None,
    unit_cost: int | None = None,
    actor_user_id: int | None = None,
    require_active: bool = True,
) -> StockAdjustment:
    """Core stock change without retry or commit.

    Locks the product row, validates the resulting balance and flushes the
    product update together with its movement. Restocks from order
    cancellation/refund pass require_active=False so a product deactivated
    after the sale can still take its units back.
    """
    _check_delta(delta)
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")
    if reference_type is not None and reference_type not in REFERENCE_TYPES:
        raise ValidationError(f"reference_type must be one of: {', '.join(REFERENCE_TYPES)}")

    product = _load_product(product_id, require_active=require_active, lock=True)

    previous_stock = product.on_hand
    new_stock = previous_stock + delta
    if new_stock < 0:
        raise InsufficientStockError(product_id, previous_stock, delta)

    product.on_hand = new_stock
    movement = InventoryMovement(
        product_id=product.id,
        movement_type=movement_type,
        delta=delta,
        balance_before=previous_stock,
        balance_after=new_stock,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        unit_cost=unit_cost,
        note=note,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()

    threshold = low_stock_threshold_for(product)
    if new_stock <= threshold:
        current_app.logger.warning(
            "Low stock: product %s (%s) at %d, threshold %d",
            product.id, product.sku, new_stock, threshold,
        )

    return StockAdjustment(previous_stock=previous_stock, new_stock=new_stock, movement_id=movement.id)


def adjust_stock(
    *,
    product_id: int,
    delta: int,
    movement_type: str = MOVEMENT_ADJUSTMENT,
    reference_type: str | None = None,
    reference_id=None,
    note: str | None = None,
    actor_user_id: int | None = None,
    record_loss: bool = False,
) -> StockAdjustment:
    """
    Apply one stock change atomically and return the before/after balance.

    With record_loss, a negative manual change also books the lost goods
    (cost_cny x units) as an adjustment expense in the same transaction.
    """
    def _op():
        result = apply_stock_delta(
            product_id=product_id,
            delta=delta,
            movement_type=movement_type,
            reference_type=reference_type,
            reference_id=reference_id,
            note=note,
            actor_user_id=actor_user_id,
        )

        if record_loss and delta < 0:
            product = _load_product(product_id)
            if product.cost_cny:
                record_entry(
                    entry_type=ENTRY_TYPE_EXPENSE,
                    category=CATEGORY_ADJUSTMENT,
                    amount=-(product.cost_cny * -delta),
                    currency="CNY",
                    reference_type="inventory_movement",
                    reference_id=result.movement_id,
                    description=note or f"Stock loss {product.sku}",
                    actor_user_id=actor_user_id,
                )

        append_event(
            table_name="inventory_movements",
            record_id=result.movement_id,
            action=movement_type,
            actor_user_id=actor_user_id,
            payload={"product_id": product_id, "delta": delta, "new_stock": result.new_stock},
        )
        return result

    return run_in_transaction(_op)


def _receive_inbound_inner(
    *,
    product_id: int,
    quantity: int,
    unit_cost: int | None,
    currency: str,
    ref_no: str | None,
    note: str | None,
    actor_user_id: int | None,
) -> StockAdjustment:
    """Core inbound logic without retry or commit.

    Called by receive_inbound() and by product_service when a product is
    registered with an opening stock.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if unit_cost is not None and (isinstance(unit_cost, bool) or not isinstance(unit_cost, int) or unit_cost < 0):
        raise ValidationError("unit_cost must be a non-negative integer")

    product = _load_product(product_id, require_active=True, lock=True)
    cost = unit_cost if unit_cost is not None else product.cost_cny

    result = apply_stock_delta(
        product_id=product_id,
        delta=quantity,
        movement_type=MOVEMENT_INBOUND,
        reference_type="inbound",
        reference_id=ref_no,
        note=note,
        unit_cost=cost,
        actor_user_id=actor_user_id,
    )

    total_cost = (cost or 0) * quantity
    if total_cost > 0:
        record_entry(
            entry_type=ENTRY_TYPE_EXPENSE,
            category=CATEGORY_INVENTORY_PURCHASE,
            amount=-total_cost,
            currency=currency,
            reference_type="inbound",
            reference_id=ref_no or result.movement_id,
            description=f"Inbound {product.sku} x{quantity}",
            actor_user_id=actor_user_id,
        )

    append_event(
        table_name="inventory_movements",
        record_id=result.movement_id,
        action=MOVEMENT_INBOUND,
        actor_user_id=actor_user_id,
        payload={"product_id": product_id, "quantity": quantity, "unit_cost": cost, "currency": currency},
    )
    return result


def receive_inbound(
    *,
    product_id: int,
    quantity: int,
    unit_cost: int | None = None,
    currency: str = "CNY",
    ref_no: str | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> StockAdjustment:
    """
    Receive purchased goods: an inbound movement plus, when a cost is known,
    an inventory_purchase expense of unit_cost x quantity. Both or neither.
    """
    def _op():
        return _receive_inbound_inner(
            product_id=product_id,
            quantity=quantity,
            unit_cost=unit_cost,
            currency=currency,
            ref_no=ref_no,
            note=note,
            actor_user_id=actor_user_id,
        )

    return run_in_transaction(_op)


def verify_product_ledger(product_id: int) -> LedgerVerification:
    """Replay a product's movements in insertion order and compare with on_hand."""
    product = _load_product(product_id)
    report = LedgerVerification(product_id=product.id, on_hand=product.on_hand)

    movements = (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product.id)
        .order_by(InventoryMovement.id.asc())
        .all()
    )

    balance = 0
    for mv in movements:
        if mv.balance_before != balance:
            report.problems.append(
                f"movement {mv.id}: balance_before {mv.balance_before} != previous balance {balance}"
            )
        if mv.balance_after != mv.balance_before + mv.delta:
            report.problems.append(
                f"movement {mv.id}: balance_after {mv.balance_after} != {mv.balance_before} + {mv.delta}"
            )
        balance += mv.delta
        if balance < 0:
            report.problems.append(f"movement {mv.id}: replayed balance negative ({balance})")

    report.replayed_balance = balance
    report.movement_count = len(movements)
    if balance != product.on_hand:
        report.problems.append(f"replayed balance {balance} != on_hand {product.on_hand}")
    return report


def get_product(product_id: int) -> Product:
    return _load_product(product_id)


def list_movements(product_id: int, *, limit: int = 200) -> list[InventoryMovement]:
    _load_product(product_id)
    return (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product_id)
        .order_by(InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_low_stock() -> list[Product]:
    default = int(get_settings_store().get("inventory.low_stock_threshold_default"))
    threshold = func.coalesce(Product.low_stock_threshold, default)
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.on_hand <= threshold)
        .order_by(Product.on_hand.asc(), Product.id.asc())
        .all()
    )
