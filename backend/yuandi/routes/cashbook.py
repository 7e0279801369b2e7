# backend/yuandi/routes/cashbook.py
"""
Cashbook routes.

SECURITY: All routes require authentication.
- Listing and balances require VIEW_CASHBOOK
- Manual entries require MANAGE_CASHBOOK

There is no update or delete route: corrections are new entries.

Time semantics:
- start/end accept ISO-8601 datetimes with Z/offsets and are inclusive.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErpError
from ..time_utils import parse_iso_datetime
from ..validation import require_int, ValidationError, enforce_rules_cashbook_entry
from ..decorators import require_auth, require_permission
from ..services import cashbook_service
from . import erp_error_response, limit_arg


cashbook_bp = Blueprint("cashbook", __name__, url_prefix="/api/cashbook")


def _datetime_arg(source, key):
    raw = source.get(key)
    if raw is None or raw == "":
        return None
    try:
        return parse_iso_datetime(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


@cashbook_bp.get("")
@require_auth
@require_permission("VIEW_CASHBOOK")
def list_entries_route():
    """Entries in ledger order with balance_after_krw, plus the current balance."""
    try:
        start = _datetime_arg(request.args, "start")
        end = _datetime_arg(request.args, "end")
    except ValidationError as e:
        return {"error": str(e)}, 400

    entries = cashbook_service.list_entries(
        start=start,
        end=end,
        limit=limit_arg(request.args),
        offset=max(0, request.args.get("offset", 0, type=int)),
    )
    return {"entries": entries, "balance_krw": cashbook_service.get_balance(as_of=end)}


@cashbook_bp.get("/summary")
@require_auth
@require_permission("VIEW_CASHBOOK")
def summary_route():
    try:
        start = _datetime_arg(request.args, "start")
        end = _datetime_arg(request.args, "end")
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"summary": cashbook_service.get_summary(start=start, end=end)}


@cashbook_bp.post("")
@require_auth
@require_permission("MANAGE_CASHBOOK")
def create_entry_route():
    """
    Record a manual entry.

    Body: entry_type, category, amount (signed: income > 0, expense < 0),
    currency (default KRW), fx_rate?, description?, transaction_date?
    """
    payload = request.get_json(silent=True) or {}

    try:
        amount = require_int(payload, "amount")
        enforce_rules_cashbook_entry({"amount": amount})
        transaction_date = _datetime_arg(payload, "transaction_date")
        entry = cashbook_service.record_manual_entry(
            entry_type=payload.get("entry_type"),
            category=payload.get("category"),
            amount=amount,
            currency=str(payload.get("currency") or "KRW").strip().upper(),
            fx_rate=payload.get("fx_rate"),
            description=payload.get("description"),
            transaction_date=transaction_date,
            actor_user_id=g.current_user.id,
        )
        return {"entry": entry.to_dict()}, 201
    except ErpError as e:
        return erp_error_response(e)
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record cashbook entry")
        return jsonify({"error": "Internal server error"}), 500
