# backend/yuandi/routes/settings.py
"""
Runtime settings and exchange rates.

SECURITY: All routes require MANAGE_SETTINGS.

Settings writes invalidate the app's SettingsStore after commit, so the next
read anywhere in the process sees the new value.
"""
from datetime import date

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErpError
from ..validation import ValidationError
from ..decorators import require_auth, require_permission
from ..services import settings_service, exchange_rate_service
from . import erp_error_response


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_permission("MANAGE_SETTINGS")
def get_settings_route():
    store = settings_service.get_settings_store()
    rates = exchange_rate_service.list_rates(limit=30)
    return {
        "settings": store.all(),
        "exchange_rates": [r.to_dict() for r in rates],
    }


@settings_bp.put("")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_settings_route():
    """Body: {"<setting key>": value, ...}; applied atomically."""
    payload = request.get_json(silent=True)

    try:
        settings = settings_service.update_settings(payload, actor_user_id=g.current_user.id)
        return {"settings": settings}
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("/exchange-rates")
@require_auth
@require_permission("MANAGE_SETTINGS")
def set_exchange_rate_route():
    """Body: currency, rate (KRW per unit), rate_date? (YYYY-MM-DD, default today)"""
    payload = request.get_json(silent=True) or {}

    try:
        raw_date = payload.get("rate_date")
        try:
            rate_date = date.fromisoformat(raw_date) if raw_date else None
        except (TypeError, ValueError):
            raise ValidationError("rate_date must be YYYY-MM-DD")

        row = exchange_rate_service.set_rate(
            currency=str(payload.get("currency") or "").strip().upper(),
            rate=payload.get("rate"),
            rate_date=rate_date,
            source=str(payload.get("source") or "manual"),
        )
        return {"exchange_rate": row.to_dict()}
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to set exchange rate")
        return jsonify({"error": "Internal server error"}), 500
