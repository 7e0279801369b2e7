# backend/yuandi/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication.
- View operations require VIEW_INVENTORY permission
- Inbound receipts require RECEIVE_INVENTORY permission
- Manual adjustments require ADJUST_INVENTORY permission

Every stock change goes through inventory_service; the response carries the
before/after balance and the id of the movement that recorded it.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErpError
from ..models import InventoryMovement
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    require_int,
    require_bool,
    ValidationError,
    enforce_rules_stock_adjustment,
)
from ..decorators import require_auth, require_permission
from ..services import inventory_service
from . import erp_error_response, limit_arg


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_ADJUSTMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "delta", "movement_type", "note"},
    required_on_create={"product_id", "delta"},
)


@inventory_bp.post("/adjustment")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_stock_route():
    """
    Manual stock correction or disposal.

    Body: product_id, delta (signed, non-zero), movement_type
    (adjustment | disposal, default adjustment), note, record_loss.
    """
    payload = dict(request.get_json(silent=True) or {})
    try:
        record_loss = require_bool(payload, "record_loss")
        payload.pop("record_loss", None)
        patch = validate_payload(
            model=InventoryMovement,
            payload=payload,
            policy=STOCK_ADJUSTMENT_POLICY,
            partial=False,
        )
        enforce_rules_stock_adjustment(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        result = inventory_service.adjust_stock(
            product_id=patch["product_id"],
            delta=patch["delta"],
            movement_type=patch.get("movement_type") or inventory_service.MOVEMENT_ADJUSTMENT,
            reference_type="manual",
            note=patch.get("note"),
            actor_user_id=g.current_user.id,
            record_loss=record_loss,
        )
        product = inventory_service.get_product(patch["product_id"])
        return {"adjustment": result.to_dict(), "product": product.to_dict()}, 201
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/inbound")
@require_auth
@require_permission("RECEIVE_INVENTORY")
def receive_inbound_route():
    """
    Receive purchased goods.

    Body: product_id, quantity (> 0), unit_cost (defaults to the product's
    cost_cny), currency (default CNY), ref_no, note.
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = require_int(payload, "product_id")
        quantity = require_int(payload, "quantity", minimum=1)
        unit_cost = require_int(payload, "unit_cost", required=False, minimum=0)
        currency = str(payload.get("currency") or "CNY").strip().upper()
        ref_no = payload.get("ref_no")
        note = payload.get("note")
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        result = inventory_service.receive_inbound(
            product_id=product_id,
            quantity=quantity,
            unit_cost=unit_cost,
            currency=currency,
            ref_no=str(ref_no) if ref_no is not None else None,
            note=note,
            actor_user_id=g.current_user.id,
        )
        product = inventory_service.get_product(product_id)
        return {"inbound": result.to_dict(), "product": product.to_dict()}, 201
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to receive inbound")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route(product_id: int):
    try:
        movements = inventory_service.list_movements(product_id, limit=limit_arg(request.args, default=200))
    except ErpError as e:
        return erp_error_response(e)
    return {"product_id": product_id, "movements": [m.to_dict() for m in movements]}


@inventory_bp.get("/<int:product_id>/verify")
@require_auth
@require_permission("VIEW_INVENTORY")
def verify_ledger_route(product_id: int):
    """Replay the product's movements and compare with on_hand."""
    try:
        report = inventory_service.verify_product_ledger(product_id)
    except ErpError as e:
        return erp_error_response(e)
    return {"verification": report.to_dict()}


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    products = inventory_service.list_low_stock()
    return {"items": [p.to_dict() for p in products], "count": len(products)}
