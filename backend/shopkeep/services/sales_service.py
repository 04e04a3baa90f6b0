# Overview: Service-layer operations for sales; encapsulates business logic and database work.

from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import db
from ..models import Product, Sale, SaleItem
from .concurrency import run_with_retry
from .inventory_service import _record_movement_inner
from shopkeep.errors import NotFoundError, ServiceError


def _receipt_number(sale_id: int) -> str:
    return f"SALE-{sale_id:06d}"


def _unit_price_for(product: Product, quantity: int, sale_type: str) -> tuple[int, bool]:
    """Wholesale price applies to wholesale sales once the line reaches wholesale_min."""
    if (
        sale_type == "wholesale"
        and product.wholesale_price_cents is not None
        and quantity >= product.wholesale_min
    ):
        return product.wholesale_price_cents, True
    return product.price_cents, False


def create_sale(
    *,
    user_id: int,
    items: list[dict],
    payment_type: str,
    sale_type: str = "retail",
    tax_amount_cents: int = 0,
) -> Sale:
    """
    Record a completed sale and draw its stock, all in one transaction.

    Each line snapshots the product's unit price at this moment. If any line
    fails (unknown product, insufficient stock) nothing is written.

    items: [{"product_id": int, "quantity": int}, ...] (already validated)
    """
    def _op():
        sale = Sale(
            receipt_number=f"PENDING-{uuid.uuid4().hex}",
            user_id=user_id,
            total_amount_cents=0,
            tax_amount_cents=tax_amount_cents,
            payment_type=payment_type,
            sale_type=sale_type,
        )
        db.session.add(sale)
        db.session.flush()
        sale.receipt_number = _receipt_number(sale.id)

        subtotal = 0
        try:
            for line in items:
                product = db.session.get(Product, line["product_id"])
                if product is None:
                    raise NotFoundError(f"Product {line['product_id']} not found")

                unit_price, is_wholesale = _unit_price_for(product, line["quantity"], sale_type)
                line_total = unit_price * line["quantity"]

                _record_movement_inner(
                    product_id=product.id,
                    change=-line["quantity"],
                    reason="sale",
                    reference=sale.receipt_number,
                    user_id=user_id,
                )

                sale.items.append(SaleItem(
                    product_id=product.id,
                    quantity=line["quantity"],
                    unit_price_cents=unit_price,
                    total_price_cents=line_total,
                    is_wholesale=is_wholesale,
                ))
                subtotal += line_total
        except ServiceError:
            db.session.rollback()
            raise

        sale.total_amount_cents = subtotal + tax_amount_cents
        db.session.commit()
        return sale

    sale = run_with_retry(_op, label="sale checkout")
    current_app.logger.info(
        "Recorded sale %s (%d lines, total %d cents)",
        sale.receipt_number,
        len(sale.items),
        sale.total_amount_cents,
    )
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale
