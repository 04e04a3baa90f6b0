# Overview: Read-only dashboard aggregation over users, products and sales.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func

from shopkeep.extensions import db
from shopkeep.models import Product, Sale, SaleItem, User
from shopkeep.time_utils import utcnow

DEFAULT_DAILY_WINDOW_DAYS = 7
DEFAULT_TOP_PRODUCTS_LIMIT = 5


def get_summary() -> dict:
    total_revenue = db.session.query(func.coalesce(func.sum(Sale.total_amount_cents), 0)).scalar()
    return {
        "user_count": db.session.query(func.count(User.id)).scalar() or 0,
        "product_count": db.session.query(func.count(Product.id)).scalar() or 0,
        "sale_count": db.session.query(func.count(Sale.id)).scalar() or 0,
        "total_revenue_cents": int(total_revenue or 0),
    }


def get_daily_sales(last_days: int = DEFAULT_DAILY_WINDOW_DAYS) -> list[dict]:
    """
    Sale totals per calendar day (UTC) over the trailing window, oldest first.

    The window covers sales created at or after now - last_days. Days without
    sales are omitted; an empty window yields [].
    """
    start = utcnow() - timedelta(days=last_days)
    day = func.date(Sale.created_at)

    rows = (
        db.session.query(
            day.label("day"),
            func.coalesce(func.sum(Sale.total_amount_cents), 0).label("total"),
        )
        .filter(Sale.created_at >= start)
        .group_by(day)
        .order_by(day.asc())
        .all()
    )

    return [
        {"date": str(row.day), "total_cents": int(row.total or 0)}
        for row in rows
    ]


def get_top_products(limit: int = DEFAULT_TOP_PRODUCTS_LIMIT) -> list[dict]:
    """Best sellers by total quantity across all sale lines, highest first."""
    total_sold = func.sum(SaleItem.quantity).label("total_sold")

    rows = (
        db.session.query(Product.id, Product.name, Product.sku, total_sold)
        .join(SaleItem, SaleItem.product_id == Product.id)
        .group_by(Product.id, Product.name, Product.sku)
        .order_by(total_sold.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )

    return [
        {"id": row.id, "name": row.name, "sku": row.sku, "total_sold": int(row.total_sold or 0)}
        for row in rows
    ]


def get_dashboard(*, last_days: int = DEFAULT_DAILY_WINDOW_DAYS, top_limit: int = DEFAULT_TOP_PRODUCTS_LIMIT) -> dict:
    return {
        "summary": get_summary(),
        "daily_sales": get_daily_sales(last_days),
        "top_products": get_top_products(top_limit),
    }
