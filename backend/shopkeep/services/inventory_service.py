# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/shopkeep/services/inventory_service.py

from ..extensions import db
from ..models import Product, StockMovement
from .concurrency import lock_for_update, run_with_retry
from shopkeep.errors import NotFoundError, ValidationError
from shopkeep.validation import enforce_rules_movement
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- Product.quantity is a snapshot; StockMovement rows are the ledger.
- Every quantity change goes through _record_movement_inner, which in ONE
  transaction increments products.quantity in the database, reads the result
  back and appends a StockMovement whose new_quantity is that result.
- Hence, per product: quantity == latest movement.new_quantity
  == sum(change) over all movements.

Business invariants:
- change is non-zero and reason is one of sale|purchase|adjust|damage.
- Quantity may never go negative; a movement that would do so writes nothing.

Concurrency:
- The product row is locked (SELECT ... FOR UPDATE where supported) and the
  increment is an in-database expression, so concurrent movements on the
  same product cannot lose updates. Lock conflicts are retried.

Audit:
- StockMovement and PriceHistory rows are append-only (no updates/deletes
  except cascading from product deletion).
"""


def _record_movement_inner(
    *,
    product_id: int,
    change: int,
    reason: str,
    reference: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Core movement logic without validation, retry, or commit.

    Called by both the public record_movement() and by callers that own the
    surrounding transaction (product creation, sales).
    """
    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")

    applied = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.quantity + change >= 0)
        .update({Product.quantity: Product.quantity + change}, synchronize_session=False)
    )
    if applied != 1:
        raise ValidationError(
            f"Insufficient stock for {product.sku}: have {product.quantity}, change {change}"
        )

    db.session.refresh(product)

    movement = StockMovement(
        product_id=product.id,
        change=change,
        new_quantity=product.quantity,
        reason=reason,
        reference=reference,
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def record_movement(
    *,
    product_id: int,
    change: int,
    reason: str,
    reference: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Apply a signed stock change and append it to the ledger, as one unit.

    Raises:
        ValidationError: zero change, unknown reason, or quantity would go negative
        NotFoundError: unknown product
    """
    enforce_rules_movement(change, reason)

    def _op():
        try:
            movement = _record_movement_inner(
                product_id=product_id,
                change=change,
                reason=reason,
                reference=reference,
                user_id=user_id,
            )
        except (NotFoundError, ValidationError):
            db.session.rollback()
            raise
        db.session.commit()
        return movement

    return run_with_retry(_op, label="stock movement")


def list_movements(*, product_id: int, limit: int = 200) -> list[StockMovement]:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_low_stock() -> list[Product]:
    """Products at or below their reorder threshold, most urgent first."""
    return (
        db.session.query(Product)
        .filter(Product.quantity <= Product.min_stock)
        .order_by(Product.quantity.asc(), Product.id.asc())
        .all()
    )
