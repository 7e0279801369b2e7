# backend/yuandi/routes/products.py
"""
Product catalogue routes.

SECURITY: All routes require authentication.
- Listing and lookups require VIEW_INVENTORY
- Registration and deactivation require MANAGE_PRODUCTS

Stock is never written here; an opening stock on registration is booked as
an inbound movement by the service.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErpError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    require_int,
    ValidationError,
    enforce_rules_product,
)
from ..decorators import require_auth, require_permission
from ..services import product_service, inventory_service
from . import erp_error_response


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "category",
        "name",
        "model",
        "color",
        "brand",
        "cost_cny",
        "sale_price_krw",
        "low_stock_threshold",
    },
    required_on_create={"category", "name"},
)


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Register a product. The SKU is derived server-side.

    Optional `initial_stock` books an inbound movement in the same transaction.
    """
    payload = dict(request.get_json(silent=True) or {})

    try:
        initial_stock = require_int(payload, "initial_stock", required=False, minimum=0)
        payload.pop("initial_stock", None)
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = product_service.create_product(
            patch=patch,
            initial_stock=initial_stock,
            actor_user_id=g.current_user.id,
        )
        return {"product": product.to_dict()}, 201
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    products = product_service.list_products(
        include_inactive=include_inactive,
        search=request.args.get("q"),
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
    except ErpError as e:
        return erp_error_response(e)
    return {"product": product.to_dict()}


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, its history kept."""
    try:
        product = product_service.soft_delete_product(
            product_id=product_id,
            actor_user_id=g.current_user.id,
        )
        return {"product": product.to_dict()}
    except ErpError as e:
        return erp_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
