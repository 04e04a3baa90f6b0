# Overview: Flask API routes for the dashboard; returns read-only aggregates as JSON.

from flask import Blueprint, request, jsonify, current_app

from ..services import dashboard_service
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """
    Summary counts, daily sales and best sellers in one payload.

    Query params:
    - days: int (optional) - daily sales window (default 7, max 366)
    - top: int (optional) - number of best sellers (default 5, max 50)
    """
    days = request.args.get("days", dashboard_service.DEFAULT_DAILY_WINDOW_DAYS, type=int)
    top = request.args.get("top", dashboard_service.DEFAULT_TOP_PRODUCTS_LIMIT, type=int)

    try:
        data = dashboard_service.get_dashboard(
            last_days=max(1, min(days, 366)),
            top_limit=max(1, min(top, 50)),
        )
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(data)
