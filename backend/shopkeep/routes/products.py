# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/shopkeep/routes/products.py
"""
Product catalog and stock routes.

SECURITY: All routes require authentication.
Stock quantity is never written directly: initial stock, movements, and
imports all go through the movement ledger.
"""
import io

from flask import Blueprint, request, jsonify, g, current_app, send_file

from ..services import products_service, inventory_service
from ..models import Product
from ..validation import (
    validate_payload,
    enforce_rules_product,
    enforce_rules_movement,
    require_fields,
    parse_int,
)
from ..errors import ServiceError, ValidationError
from ..decorators import require_auth
from .. import spreadsheet

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products, newest first.

    Query params:
    - search: str (optional) - substring of name or sku
    - category: str (optional) - exact category
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    result = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result)


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a new product.

    An optional quantity is booked as an "Initial stock" adjust movement.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=products_service.PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)  # Handles price validation including max check
        created = products_service.create_product(patch=patch, user_id=g.current_user_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created), 201


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = inventory_service.get_low_stock()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/template")
@require_auth
def template_route():
    """Download the xlsx import template."""
    return send_file(
        io.BytesIO(spreadsheet.build_template()),
        mimetype=spreadsheet.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=spreadsheet.TEMPLATE_FILENAME,
    )


@products_bp.post("/upload")
@require_auth
def upload_route():
    """
    Bulk-create products from an .xlsx or .csv upload (form field "file").

    Rows that fail are reported and skipped; the rest are created.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]

    try:
        rows = spreadsheet.read_rows(file.stream, file.filename)
        result = products_service.bulk_import(rows, user_id=g.current_user_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "message": f"Imported {result['created']} products",
        "data": result,
    })


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id))
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    """
    Update product attributes. quantity is rejected; use movements.

    A price change is recorded in the product's price history.
    """
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=products_service.PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_product(patch)
        updated = products_service.update_product(
            product_id=product_id, patch=patch, user_id=g.current_user_id
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated)


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "Product deleted"})


@products_bp.get("/<int:product_id>/movements")
@require_auth
def list_movements_route(product_id: int):
    limit = request.args.get("limit", 200, type=int)
    try:
        movements = inventory_service.list_movements(
            product_id=product_id, limit=max(1, min(limit, 1000))
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code

    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)})


@products_bp.post("/<int:product_id>/movements")
@require_auth
def record_movement_route(product_id: int):
    """
    Apply a signed stock change.

    Body: {"change": int (non-zero), "reason": "sale|purchase|adjust|damage", "reference": str?}
    """
    try:
        data = require_fields(request.get_json(silent=True), "change", "reason")
        change = parse_int(data["change"], "change")
        reason = data["reason"]
        enforce_rules_movement(change, reason)

        reference = data.get("reference")
        if reference is not None:
            if not isinstance(reference, str):
                raise ValidationError("reference must be a string")
            reference = reference.strip()[:255] or None

        movement = inventory_service.record_movement(
            product_id=product_id,
            change=change,
            reason=reason,
            reference=reference,
            user_id=g.current_user_id,
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(movement.to_dict()), 201
