# Overview: Shared helpers for API blueprints.

from flask import current_app, jsonify

from ..errors import ErpError


def erp_error_response(e: ErpError):
    """Translate a domain error into its JSON body and status code."""
    if e.status_code >= 500:
        current_app.logger.error("%s: %s", type(e).__name__, e)
    return jsonify({"error": str(e)}), e.status_code


def limit_arg(args, default: int = 100, maximum: int = 500) -> int:
    limit = args.get("limit", default, type=int)
    return max(1, min(limit, maximum))
