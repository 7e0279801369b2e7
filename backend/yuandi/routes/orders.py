# backend/yuandi/routes/orders.py
"""
Order lifecycle routes.

SECURITY: All routes require authentication.
- Create, list, view, history and cancel require MANAGE_ORDERS
- Ship and complete require SHIP_ORDERS
- Refund requires REFUND_ORDERS

Each transition is one service call; stock movements and cashbook entries
are written by the service in the same transaction as the status change.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErpError
from ..models import Order
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    require_int,
    ValidationError,
    enforce_rules_order,
    enforce_rules_shipment,
    enforce_rules_refund,
)
from ..decorators import require_auth, require_permission
from ..services import order_service, cashbook_service, event_log_service
from . import erp_error_response, limit_arg


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name",
        "customer_phone",
        "customer_email",
        "pccc_code",
        "shipping_address",
        "zip_code",
        "customer_memo",
        "currency",
        "discount_amount",
    },
    required_on_create={"customer_name"},
)


def _optional_str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@orders_bp.post("")
@require_auth
@require_permission("MANAGE_ORDERS")
def create_order_route():
    """
    Place a paid order.

    Body: customer fields, currency (KRW default), discount_amount and
    items: [{product_id, quantity, unit_price?}].
    """
    payload = dict(request.get_json(silent=True) or {})
    items = payload.pop("items", None)

    try:
        patch = validate_payload(
            model=Order,
            payload=payload,
            policy=ORDER_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_order(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        order = order_service.create_order(patch=patch, items=items, actor_user_id=g.current_user.id)
        return {"order": order.to_dict()}, 201
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_permission("MANAGE_ORDERS")
def list_orders_route():
    try:
        orders = order_service.list_orders(
            status=request.args.get("status"),
            limit=limit_arg(request.args),
            offset=max(0, request.args.get("offset", 0, type=int)),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)}


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("MANAGE_ORDERS")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except ErpError as e:
        return erp_error_response(e)
    return {"order": order.to_dict()}


@orders_bp.get("/<int:order_id>/history")
@require_auth
@require_permission("MANAGE_ORDERS")
def order_history_route(order_id: int):
    """Transition events and cashbook entries recorded for one order."""
    try:
        order = order_service.get_order(order_id)
    except ErpError as e:
        return erp_error_response(e)

    events = event_log_service.list_events(table_name="orders", record_id=order.id)
    entries = cashbook_service.list_entries_for_reference("order", order.id)
    return {
        "order_no": order.order_no,
        "status": order.status,
        "events": [ev.to_dict() for ev in events],
        "cashbook_entries": [e.to_dict() for e in entries],
    }


@orders_bp.patch("/<int:order_id>/ship")
@require_auth
@require_permission("SHIP_ORDERS")
def ship_order_route(order_id: int):
    """Body: courier, tracking_number, shipping_fee?, shipment_note?"""
    payload = request.get_json(silent=True) or {}

    try:
        shipping_fee = require_int(payload, "shipping_fee", required=False, minimum=0)
        enforce_rules_shipment({"shipping_fee": shipping_fee})
        order = order_service.ship_order(
            order_id,
            courier=_optional_str(payload, "courier"),
            tracking_number=_optional_str(payload, "tracking_number"),
            shipping_fee=shipping_fee,
            shipment_note=_optional_str(payload, "shipment_note"),
            actor_user_id=g.current_user.id,
        )
        return {"order": order.to_dict()}
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to ship order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/complete")
@require_auth
@require_permission("SHIP_ORDERS")
def complete_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        order = order_service.complete_order(
            order_id,
            completion_note=_optional_str(payload, "completion_note"),
            actor_user_id=g.current_user.id,
        )
        return {"order": order.to_dict()}
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/cancel")
@require_auth
@require_permission("MANAGE_ORDERS")
def cancel_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        order = order_service.cancel_order(
            order_id,
            reason=_optional_str(payload, "reason"),
            actor_user_id=g.current_user.id,
        )
        return {"order": order.to_dict()}
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/refund")
@require_auth
@require_permission("REFUND_ORDERS")
def refund_order_route(order_id: int):
    """Body: refund_reason, refund_amount? (defaults to final_amount), refund_note?"""
    payload = request.get_json(silent=True) or {}

    try:
        refund_amount = require_int(payload, "refund_amount", required=False)
        enforce_rules_refund({"refund_amount": refund_amount})
        order = order_service.refund_order(
            order_id,
            refund_reason=_optional_str(payload, "refund_reason"),
            refund_amount=refund_amount,
            refund_note=_optional_str(payload, "refund_note"),
            actor_user_id=g.current_user.id,
        )
        return {"order": order.to_dict()}
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
