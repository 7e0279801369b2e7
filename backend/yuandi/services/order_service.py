# Overview: Order lifecycle; every transition commits status, stock and cashbook together.

from __future__ import annotations

from urllib.parse import quote

from ..errors import InvalidTransitionError, OrderNotFoundError
from ..extensions import db
from ..models import Order, OrderItem, Shipment, Product
from ..time_utils import utcnow
from ..validation import ValidationError, MAX_QUANTITY, MAX_AMOUNT
from .cashbook_service import (
    record_entry,
    ENTRY_TYPE_INCOME,
    ENTRY_TYPE_EXPENSE,
    CATEGORY_ORDER_PAYMENT,
    CATEGORY_REFUND,
    CATEGORY_SHIPPING_COST,
)
from .concurrency import lock_for_update, run_in_transaction
from .event_log_service import append_event
from .inventory_service import (
    apply_stock_delta,
    _load_product,
    MOVEMENT_SALE,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_REFUND_RESTOCK,
)
from .sequence_service import next_order_number
"""
Order Lifecycle

    PAID -> SHIPPED -> DONE
    PAID -> CANCELLED
    PAID | SHIPPED -> REFUNDED

DONE, CANCELLED and REFUNDED are terminal. Each transition locks the order
row (version-checked as well) and writes, in one transaction:

- create:   order + items, one `sale` movement per item (-qty),
            `order_payment` income of final_amount
- ship:     Shipment row, optional `shipping_cost` expense
- complete: status only
- cancel:   one `adjustment` movement per item (+qty, ref order_cancel),
            `refund` expense of -final_amount
- refund:   `refund` expense of -refund_amount; from PAID the goods never
            left, so items are restocked with `refund_restock` movements

A rejected transition raises InvalidTransitionError before anything is
written.
"""


STATUS_PAID = "PAID"
STATUS_SHIPPED = "SHIPPED"
STATUS_DONE = "DONE"
STATUS_CANCELLED = "CANCELLED"
STATUS_REFUNDED = "REFUNDED"

ORDER_STATUSES = (STATUS_PAID, STATUS_SHIPPED, STATUS_DONE, STATUS_CANCELLED, STATUS_REFUNDED)

ALLOWED_TRANSITIONS = {
    STATUS_PAID: {STATUS_SHIPPED, STATUS_CANCELLED, STATUS_REFUNDED},
    STATUS_SHIPPED: {STATUS_DONE, STATUS_REFUNDED},
    STATUS_DONE: set(),
    STATUS_CANCELLED: set(),
    STATUS_REFUNDED: set(),
}

ORDER_CURRENCIES = ("KRW", "CNY")

# Known couriers -> tracking page prefix (tracking number is appended)
COURIER_TRACKING_URLS = {
    "cj": "https://www.cjlogistics.com/ko/tool/parcel/tracking?gnbInvNoText=",
    "cjlogistics": "https://www.cjlogistics.com/ko/tool/parcel/tracking?gnbInvNoText=",
    "hanjin": "https://www.hanjin.com/kor/CMS/DeliveryMgr/WaybillResult.do?mCode=MN038&wblnum=",
    "lotte": "https://www.lotteglogis.com/home/reservation/tracking/linkView?InvNo=",
    "kunyoung": "https://www.kunyoung.com/goods/goods_01.php?mulno=",
    "post": "https://service.epost.go.kr/trace.RetrieveDomRigiTraceList.comm?sid1=",
    "koreapost": "https://service.epost.go.kr/trace.RetrieveDomRigiTraceList.comm?sid1=",
    "ems": "https://service.epost.go.kr/trace.RetrieveEmsTrace.comm?POST_CODE=",
}


def tracking_url_for(courier: str, tracking_number: str) -> str | None:
    prefix = COURIER_TRACKING_URLS.get((courier or "").strip().lower())
    if prefix is None:
        return None
    return prefix + quote(tracking_number, safe="")


def _load_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def _require_transition(order: Order, requested: str) -> None:
    if requested not in ALLOWED_TRANSITIONS.get(order.status, set()):
        raise InvalidTransitionError(order.status, requested)


def _record_transition(order: Order, previous: str, action: str, actor_user_id, **extra) -> None:
    payload = {"order_no": order.order_no, "from": previous, "to": order.status}
    payload.update(extra)
    append_event(
        table_name="orders",
        record_id=order.id,
        action=action,
        actor_user_id=actor_user_id,
        payload=payload,
    )


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    normalized = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        unit_price = raw.get("unit_price")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"items[{idx}].product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be a positive integer")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"items[{idx}].quantity cannot exceed {MAX_QUANTITY}")
        if unit_price is not None:
            if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
                raise ValidationError(f"items[{idx}].unit_price must be a non-negative integer")
        normalized.append({"product_id": product_id, "quantity": quantity, "unit_price": unit_price})
    return normalized


def create_order(
    *,
    patch: dict,
    items,
    actor_user_id: int | None = None,
) -> Order:
    """
    Place a paid order: reserve stock for every item and book the payment.

    `patch` holds validated customer/order fields. Items without a
    unit_price use the product's sale_price_krw (KRW orders only).
    Raises InsufficientStockError if any item cannot be covered; nothing is
    written in that case.
    """
    lines = _normalize_items(items)
    currency = patch.get("currency") or "KRW"
    if currency not in ORDER_CURRENCIES:
        raise ValidationError(f"currency must be one of: {', '.join(ORDER_CURRENCIES)}")
    discount = patch.get("discount_amount") or 0

    order_no = next_order_number()

    def _op():
        now = utcnow()
        order = Order(
            order_no=order_no,
            status=STATUS_PAID,
            currency=currency,
            total_amount=0,
            discount_amount=discount,
            final_amount=0,
            paid_at=now,
            created_by_user_id=actor_user_id,
        )
        for key, value in patch.items():
            if key in ("currency", "discount_amount"):
                continue
            setattr(order, key, value)
        db.session.add(order)
        db.session.flush()

        total = 0
        for line in lines:
            product: Product = _load_product(line["product_id"], require_active=True, lock=True)
            unit_price = line["unit_price"]
            if unit_price is None:
                if currency != "KRW" or product.sale_price_krw is None:
                    raise ValidationError(f"unit_price is required for product {product.id}")
                unit_price = product.sale_price_krw

            subtotal = unit_price * line["quantity"]
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                quantity=line["quantity"],
                unit_price=unit_price,
                subtotal=subtotal,
            ))
            apply_stock_delta(
                product_id=product.id,
                delta=-line["quantity"],
                movement_type=MOVEMENT_SALE,
                reference_type="order",
                reference_id=order.id,
                note=order.order_no,
                actor_user_id=actor_user_id,
            )
            total += subtotal

        if discount > total:
            raise ValidationError("discount_amount cannot exceed the order total")
        if total > MAX_AMOUNT:
            raise ValidationError(f"order total cannot exceed {MAX_AMOUNT}")

        order.total_amount = total
        order.final_amount = total - discount

        if order.final_amount > 0:
            record_entry(
                entry_type=ENTRY_TYPE_INCOME,
                category=CATEGORY_ORDER_PAYMENT,
                amount=order.final_amount,
                currency=currency,
                reference_type="order",
                reference_id=order.id,
                description=f"Payment {order.order_no}",
                actor_user_id=actor_user_id,
                transaction_date=now,
            )

        db.session.flush()
        append_event(
            table_name="orders",
            record_id=order.id,
            action="create",
            actor_user_id=actor_user_id,
            payload={"order_no": order.order_no, "to": STATUS_PAID, "final_amount": order.final_amount},
        )
        return order

    return run_in_transaction(_op)


def ship_order(
    order_id: int,
    *,
    courier: str,
    tracking_number: str,
    shipping_fee: int | None = None,
    shipment_note: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """PAID -> SHIPPED with a shipment record; a shipping fee is booked as an expense."""
    courier = (courier or "").strip()
    tracking_number = (tracking_number or "").strip()
    if not courier:
        raise ValidationError("courier is required")
    if not tracking_number:
        raise ValidationError("tracking_number is required")
    if len(courier) > 32:
        raise ValidationError("courier exceeds max length 32")
    if len(tracking_number) > 64:
        raise ValidationError("tracking_number exceeds max length 64")

    def _op():
        order = _load_order(order_id, lock=True)
        _require_transition(order, STATUS_SHIPPED)

        now = utcnow()
        previous = order.status
        order.status = STATUS_SHIPPED
        order.shipped_at = now

        shipment = Shipment(
            order_id=order.id,
            courier=courier,
            tracking_number=tracking_number,
            tracking_url=tracking_url_for(courier, tracking_number),
            shipping_fee=shipping_fee,
            shipment_note=shipment_note,
            shipped_at=now,
        )
        db.session.add(shipment)
        db.session.flush()

        if shipping_fee:
            record_entry(
                entry_type=ENTRY_TYPE_EXPENSE,
                category=CATEGORY_SHIPPING_COST,
                amount=-shipping_fee,
                currency="KRW",
                reference_type="order",
                reference_id=order.id,
                description=f"Shipping {order.order_no} ({courier})",
                actor_user_id=actor_user_id,
                transaction_date=now,
            )

        _record_transition(order, previous, "ship", actor_user_id,
                           courier=courier, tracking_number=tracking_number)
        return order

    return run_in_transaction(_op)


def complete_order(
    order_id: int,
    *,
    completion_note: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """SHIPPED -> DONE."""
    def _op():
        order = _load_order(order_id, lock=True)
        _require_transition(order, STATUS_DONE)

        previous = order.status
        order.status = STATUS_DONE
        order.completed_at = utcnow()
        order.completion_note = completion_note
        db.session.flush()

        _record_transition(order, previous, "complete", actor_user_id)
        return order

    return run_in_transaction(_op)


def _restock_items(order: Order, *, movement_type: str, reference_type: str, actor_user_id) -> None:
    for item in order.items:
        apply_stock_delta(
            product_id=item.product_id,
            delta=item.quantity,
            movement_type=movement_type,
            reference_type=reference_type,
            reference_id=order.id,
            note=order.order_no,
            actor_user_id=actor_user_id,
            require_active=False,
        )


def cancel_order(
    order_id: int,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """PAID -> CANCELLED: put every item back and reverse the payment."""
    def _op():
        order = _load_order(order_id, lock=True)
        _require_transition(order, STATUS_CANCELLED)

        now = utcnow()
        previous = order.status
        _restock_items(order, movement_type=MOVEMENT_ADJUSTMENT, reference_type="order_cancel",
                       actor_user_id=actor_user_id)

        if order.final_amount > 0:
            record_entry(
                entry_type=ENTRY_TYPE_EXPENSE,
                category=CATEGORY_REFUND,
                amount=-order.final_amount,
                currency=order.currency,
                reference_type="order",
                reference_id=order.id,
                description=f"Cancel {order.order_no}",
                actor_user_id=actor_user_id,
                transaction_date=now,
            )

        order.status = STATUS_CANCELLED
        order.cancelled_at = now
        db.session.flush()

        _record_transition(order, previous, "cancel", actor_user_id, reason=reason)
        return order

    return run_in_transaction(_op)


def refund_order(
    order_id: int,
    *,
    refund_reason: str,
    refund_amount: int | None = None,
    refund_note: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """
    PAID | SHIPPED -> REFUNDED.

    refund_amount defaults to final_amount and may be partial. Shipped goods
    stay with the customer; a refund before shipping restocks the items.
    """
    refund_reason = (refund_reason or "").strip()
    if not refund_reason:
        raise ValidationError("refund_reason is required")

    def _op():
        order = _load_order(order_id, lock=True)
        _require_transition(order, STATUS_REFUNDED)

        amount = order.final_amount if refund_amount is None else refund_amount
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("refund_amount must be an integer")
        if amount > order.final_amount or (amount <= 0 and order.final_amount > 0):
            raise ValidationError(f"refund_amount must be between 1 and {order.final_amount}")

        now = utcnow()
        previous = order.status
        if previous == STATUS_PAID:
            _restock_items(order, movement_type=MOVEMENT_REFUND_RESTOCK, reference_type="order_refund",
                           actor_user_id=actor_user_id)

        if amount > 0:
            record_entry(
                entry_type=ENTRY_TYPE_EXPENSE,
                category=CATEGORY_REFUND,
                amount=-amount,
                currency=order.currency,
                reference_type="order",
                reference_id=order.id,
                description=f"Refund {order.order_no}: {refund_reason}",
                actor_user_id=actor_user_id,
                transaction_date=now,
            )

        order.status = STATUS_REFUNDED
        order.refunded_at = now
        order.refund_reason = refund_reason
        order.refund_note = refund_note
        order.refund_amount = amount
        db.session.flush()

        _record_transition(order, previous, "refund", actor_user_id, refund_amount=amount)
        return order

    return run_in_transaction(_op)


def get_order(order_id: int) -> Order:
    return _load_order(order_id)


def list_orders(*, status: str | None = None, limit: int = 100, offset: int = 0) -> list[Order]:
    q = db.session.query(Order)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
