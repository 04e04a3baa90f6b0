# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/shopkeep/routes/sales.py
"""
Checkout routes.

A sale is recorded in one transaction: every line draws stock through the
movement ledger, and any failing line leaves nothing behind.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..validation import enforce_rules_sale
from ..errors import ServiceError
from ..decorators import require_auth

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale.

    Body: {
      "items": [{"product_id": int, "quantity": int}, ...],
      "payment_type": "cash|card|mobile",
      "sale_type": "retail|wholesale" (default retail),
      "tax_amount_cents": int (default 0)
    }
    """
    try:
        order = enforce_rules_sale(request.get_json(silent=True))
        sale = sales_service.create_sale(user_id=g.current_user_id, **order)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(sale.to_dict()), 201


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    return jsonify(sale.to_dict())
