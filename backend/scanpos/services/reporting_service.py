# Overview: Read-only report rollups over sales (windowed) and products (point-in-time).

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from scanpos.extensions import db, observer
from scanpos.models import Product, Sale, StockMovement
from scanpos.time_utils import local_day_bounds, utcnow, to_utc_z
from scanpos.validation import ValidationError
from .calculations import round_half_up_div
from .concurrency import storage_read

PERIODS: dict[str, timedelta | None] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}

PERIOD_ALIASES = {
    "last-24h": "24h",
    "last-7d": "7d",
    "last-30d": "30d",
    "all-time": "all",
}


def normalize_period(period: str | None) -> str:
    key = (period or "24h").strip().lower()
    key = PERIOD_ALIASES.get(key, key)
    if key not in PERIODS:
        raise ValidationError(
            f"period must be one of {', '.join(PERIODS)}", field="period"
        )
    return key


def _low_stock_query():
    return db.session.query(Product).filter(Product.current_stock <= Product.min_stock)


@observer.observe("build_report")
@storage_read
def build_report(period: str | None = "24h", *, now: datetime | None = None) -> dict:
    """
    Sales metrics over the window plus instantaneous inventory metrics.

    Window metrics: total/count/average and per-sale items, top products by
    quantity (ties stay in the order the product was first seen while
    scanning sales newest-first).

    Point-in-time metrics (no window): low-stock list and inventory summary
    valued at current sale prices.
    """
    period = normalize_period(period)
    now = now or utcnow()
    window = PERIODS[period]
    start_dt = now - window if window is not None else None

    query = db.session.query(Sale, Product).join(Product, Sale.product_id == Product.id)
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    sales_total = 0
    items = []
    by_product: dict[int, dict] = {}
    for sale, product in rows:
        sales_total += sale.total_cents
        items.append(
            {
                "id": sale.id,
                "product_id": product.id,
                "product_title": product.title,
                "quantity": sale.quantity,
                "total_cents": sale.total_cents,
                "created_at": to_utc_z(sale.created_at),
            }
        )
        entry = by_product.get(product.id)
        if entry is None:
            by_product[product.id] = {
                "product_id": product.id,
                "barcode": product.barcode,
                "product_title": product.title,
                "total_quantity": sale.quantity,
                "total_revenue_cents": sale.total_cents,
            }
        else:
            entry["total_quantity"] += sale.quantity
            entry["total_revenue_cents"] += sale.total_cents

    sales_count = len(rows)
    sales_average = round_half_up_div(sales_total, sales_count) if sales_count else 0

    top_limit = current_app.config.get("TOP_PRODUCTS_LIMIT", 10)
    # sorted() is stable: equal quantities keep first-encountered order
    top_products = sorted(by_product.values(), key=lambda e: -e["total_quantity"])[:top_limit]

    low_limit = current_app.config.get("LOW_STOCK_LIMIT", 20)
    low_stock = (
        _low_stock_query()
        .order_by(Product.current_stock.asc(), Product.id.asc())
        .limit(low_limit)
        .all()
    )

    summary = db.session.query(
        func.count(Product.id).label("total_products"),
        func.coalesce(func.sum(Product.current_stock), 0).label("total_stock"),
        func.coalesce(func.sum(Product.current_stock * Product.sale_price_cents), 0).label("total_value"),
    ).one()

    return {
        "period": period,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(now),
        "sales": {
            "total_cents": sales_total,
            "count": sales_count,
            "average_cents": sales_average,
            "items": items,
        },
        "top_products": top_products,
        "low_stock": [
            {
                "id": p.id,
                "barcode": p.barcode,
                "title": p.title,
                "current_stock": p.current_stock,
                "min_stock": p.min_stock,
            }
            for p in low_stock
        ],
        "summary": {
            "total_products": int(summary.total_products or 0),
            "total_stock": int(summary.total_stock or 0),
            "total_value_cents": int(summary.total_value or 0),
        },
    }


@observer.observe("stats_snapshot")
@storage_read
def stats_snapshot(*, now: datetime | None = None) -> dict:
    """
    Dashboard numbers: today's sales (local calendar day) and inventory
    valued at COST. build_report values inventory at sale price; the two
    bases answer different questions and are kept separate.
    """
    tz_name = current_app.config.get("LOCAL_TIMEZONE", "UTC")
    day_start, day_end = local_day_bounds(tz_name, now)

    today = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0).label("total"),
        func.coalesce(func.sum(Sale.quantity), 0).label("quantity"),
        func.count(Sale.id).label("count"),
    ).filter(Sale.created_at >= day_start, Sale.created_at < day_end).one()

    inventory = db.session.query(
        func.count(Product.id).label("total_products"),
        func.coalesce(func.sum(Product.current_stock * Product.cost_price_cents), 0).label("value_at_cost"),
    ).one()

    low_stock_count = _low_stock_query().count()

    return {
        "total_products": int(inventory.total_products or 0),
        "low_stock_count": low_stock_count,
        "inventory_value_at_cost_cents": int(inventory.value_at_cost or 0),
        "today_sales": {
            "total_cents": int(today.total or 0),
            "quantity": int(today.quantity or 0),
            "count": int(today.count or 0),
            "day_start": to_utc_z(day_start),
            "day_end": to_utc_z(day_end),
        },
    }


@storage_read
def reconcile_ledger() -> list[dict]:
    """
    Products whose current_stock differs from the sum of their movements.

    An empty list means the materialized stock matches the ledger everywhere.
    """
    ledger = (
        db.session.query(
            StockMovement.product_id.label("product_id"),
            func.coalesce(func.sum(StockMovement.quantity), 0).label("ledger_stock"),
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )

    rows = (
        db.session.query(
            Product.id,
            Product.barcode,
            Product.current_stock,
            func.coalesce(ledger.c.ledger_stock, 0).label("ledger_stock"),
        )
        .outerjoin(ledger, ledger.c.product_id == Product.id)
        .filter(Product.current_stock != func.coalesce(ledger.c.ledger_stock, 0))
        .order_by(Product.id.asc())
        .all()
    )

    return [
        {
            "product_id": row.id,
            "barcode": row.barcode,
            "current_stock": int(row.current_stock),
            "ledger_stock": int(row.ledger_stock),
            "drift": int(row.current_stock) - int(row.ledger_stock),
        }
        for row in rows
    ]
