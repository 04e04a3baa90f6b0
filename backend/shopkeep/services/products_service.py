# backend/shopkeep/services/products_service.py
"""
Products Service

Catalog CRUD on top of the inventory ledger:
- create_product routes any initial quantity through the movement ledger
- update_product never touches quantity and records price changes
- bulk_import creates row by row and never aborts on a bad row
"""
from __future__ import annotations

import math

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, PriceHistory, SaleItem
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from .inventory_service import _record_movement_inner
from shopkeep.errors import ConflictError, DuplicateSku, NotFoundError, ServiceError, ValidationError

PRODUCT_MUTABLE_FIELDS = frozenset({
    "name", "sku", "barcode", "price_cents", "cost_price_cents", "min_stock",
    "wholesale_price_cents", "wholesale_min", "category", "unit", "pieces_per_unit",
})

# quantity is accepted on create only (as initial stock); afterwards it moves via the ledger.
PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS | {"quantity"},
    required_on_create=frozenset({"name", "sku"}),
)
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_MUTABLE_FIELDS)

INITIAL_STOCK_REFERENCE = "Initial stock"
IMPORT_REFERENCE = "Excel upload"

# Spreadsheet headers accepted by bulk_import, mapped to columns. Major-unit
# price headers (e.g. "price") are converted to cents.
IMPORT_HEADER_ALIASES = {
    "costPrice": "cost_price",
    "minStock": "min_stock",
    "wholesalePrice": "wholesale_price",
    "wholesaleMin": "wholesale_min",
    "piecesPerUnit": "pieces_per_unit",
}
MAJOR_UNIT_PRICE_FIELDS = ("price", "cost_price", "wholesale_price")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product_or_404(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing, newest first, with optional search and pagination.

    search matches name or sku (substring, case-insensitive); category is exact.
    """
    base_query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category:
        base_query = base_query.filter(Product.category == category)

    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    # Pagination logic
    per_page = max(1, min(per_page or 20, 100))  # Default 20, clamped to 1..100
    page = max(page, 1)  # Ensure page >= 1

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> dict:
    """Product with its 10 most recent movements and full price history."""
    product = get_product_or_404(product_id)

    movements = sorted(product.movements, key=lambda m: m.id, reverse=True)[:10]
    history = sorted(product.price_history, key=lambda h: h.id, reverse=True)

    data = product.to_dict()
    data["recent_movements"] = [m.to_dict() for m in movements]
    data["price_history"] = [h.to_dict() for h in history]
    return data


def _ensure_unique(*, sku: str | None = None, barcode: str | None = None, exclude_id: int | None = None) -> None:
    if sku is not None:
        q = db.session.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise DuplicateSku()
    if barcode is not None:
        q = db.session.query(Product.id).filter(Product.barcode == barcode)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError("Product with this barcode already exists")


def _create_product_inner(*, patch: dict, reference: str, user_id: int | None) -> Product:
    """Insert the product at quantity 0 and book initial stock as a movement. No commit."""
    _ensure_unique(sku=patch.get("sku"), barcode=patch.get("barcode"))

    p = Product(quantity=0)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()  # ensure p.id exists before the ledger entry

    initial = patch.get("quantity") or 0
    if initial > 0:
        _record_movement_inner(
            product_id=p.id,
            change=initial,
            reason="adjust",
            reference=reference,
            user_id=user_id,
        )
    return p


def create_product(*, patch: dict, user_id: int | None = None) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        DuplicateSku: sku already used (nothing is written)
        ConflictError: barcode already used
    """
    try:
        p = _create_product_inner(patch=patch, reference=INITIAL_STOCK_REFERENCE, user_id=user_id)
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent insert of the same sku/barcode
        db.session.rollback()
        raise ConflictError("Product with this SKU or barcode already exists")
    except ServiceError:
        db.session.rollback()
        raise

    current_app.logger.info("Created product id=%s sku=%s", p.id, p.sku)
    return p.to_dict()


def update_product(*, product_id: int, patch: dict, user_id: int | None = None) -> dict:
    """
    Update product attributes.

    quantity is never part of the patch (the update policy rejects it). A
    price change appends PriceHistory(old -> new) before the new price is applied.

    Raises:
        NotFoundError: unknown product
        DuplicateSku / ConflictError: sku or barcode owned by another product
    """
    p = get_product_or_404(product_id)

    _ensure_unique(
        sku=patch["sku"] if patch.get("sku") not in (None, p.sku) else None,
        barcode=patch["barcode"] if patch.get("barcode") not in (None, p.barcode) else None,
        exclude_id=p.id,
    )

    if "price_cents" in patch and patch["price_cents"] != p.price_cents:
        db.session.add(PriceHistory(
            product_id=p.id,
            old_price_cents=p.price_cents,
            new_price_cents=patch["price_cents"],
            user_id=user_id,
        ))

    apply_product_patch(p, patch)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product with this SKU or barcode already exists")

    return p.to_dict()


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product with its movement and price history.

    Sale lines keep their price snapshot; their product reference is cleared.
    """
    p = get_product_or_404(product_id)
    sku = p.sku

    db.session.query(SaleItem).filter(SaleItem.product_id == p.id).update(
        {SaleItem.product_id: None}, synchronize_session=False
    )
    db.session.delete(p)
    db.session.commit()

    current_app.logger.info("Deleted product id=%s sku=%s", product_id, sku)


def _normalize_import_row(row: dict) -> dict:
    """
    Map a spreadsheet row onto product columns.

    Blank cells are dropped so column defaults apply, integral floats (as
    spreadsheets store numbers) become ints, and major-unit prices become cents.
    Unknown headers are ignored.
    """
    cleaned: dict = {}
    for raw_key, value in row.items():
        if raw_key is None:
            continue
        key = str(raw_key).strip()
        key = IMPORT_HEADER_ALIASES.get(key, key)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        cleaned[key] = value

    for field in MAJOR_UNIT_PRICE_FIELDS:
        if field in cleaned:
            amount = cleaned.pop(field)
            try:
                number = float(amount)
            except (TypeError, ValueError):
                cleaned.setdefault(f"{field}_cents", amount)  # let validation report it
                continue
            if not math.isfinite(number):
                raise ValidationError(f"{field} must be a finite number")
            cleaned.setdefault(f"{field}_cents", round(number * 100))

    if "sku" in cleaned:
        cleaned["sku"] = str(cleaned["sku"]).strip()
    if "barcode" in cleaned:
        cleaned["barcode"] = str(cleaned["barcode"]).strip()

    return {k: v for k, v in cleaned.items() if k in PRODUCT_CREATE_POLICY.writable_fields}


def bulk_import(rows: list[dict], *, user_id: int | None = None) -> dict:
    """
    Create products from row mappings, one transaction per row.

    Every row is attempted. Duplicate skus (already stored, or earlier in the
    same import) and invalid rows are reported in errors and skipped; the
    import never rolls back rows that succeeded.

    Returns {"created": n, "errors": [{"row", "sku", "error"}]} where row is
    the 1-based data row number.
    """
    created = 0
    errors: list[dict] = []

    for index, row in enumerate(rows, start=1):
        sku = None
        try:
            if not isinstance(row, dict):
                raise ValidationError("Row is not a mapping")
            sku = row.get("sku")
            normalized = _normalize_import_row(row)
            sku = normalized.get("sku")
            patch = validate_payload(
                model=Product,
                payload=normalized,
                policy=PRODUCT_CREATE_POLICY,
                partial=False,
            )
            enforce_rules_product(patch)

            if db.session.query(Product.id).filter(Product.sku == patch["sku"]).first():
                errors.append({"row": index, "sku": sku, "error": "Already exists"})
                continue

            _create_product_inner(patch=patch, reference=IMPORT_REFERENCE, user_id=user_id)
            db.session.commit()
            created += 1
        except ServiceError as exc:
            db.session.rollback()
            errors.append({"row": index, "sku": sku, "error": str(exc)})
        except IntegrityError:
            db.session.rollback()
            errors.append({"row": index, "sku": sku, "error": "Conflicts with an existing product"})
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Bulk import row %d failed", index)
            errors.append({"row": index, "sku": sku, "error": "Row could not be imported"})

    current_app.logger.info("Bulk import finished: %d created, %d errors", created, len(errors))
    return {"created": created, "errors": errors}
