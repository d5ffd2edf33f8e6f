# Overview: Stock transaction engine; every stock change writes product and ledger atomically.

# backend/scanpos/services/stock_service.py

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db, observer
from ..models import Product, StockMovement, Sale
from ..validation import (
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    MAX_PRICE_CENTS,
    MAX_QUANTITY,
    coerce_int,
)
from scanpos.time_utils import parse_iso_datetime, to_utc_z
from .calculations import compute_sale_amounts, compute_stock_value
from .concurrency import atomic, lock_for_update, storage_read
"""
ScanPOS Stock Invariants (authoritative)

Ledger model:
- stock_movements is append-only. products.current_stock is a materialized
  cache of SUM(stock_movements.quantity) for the product.
- Both are written in the same DB transaction (concurrency.atomic), never one
  without the other.

Business invariants:
- current_stock never goes negative. The decrement is a conditional UPDATE
  (... WHERE current_stock >= :qty), so the check and the write are one
  statement evaluated by the database under the transaction's write lock.
  Two concurrent sales can never both pass the check on the same units.
- ENTRY adds stock at a unit price (default: product cost).
- SALE removes stock, snapshots the unit price (default: product sale price)
  and tax rate, and writes exactly one Sale plus one SALE movement whose
  quantity is -sale.quantity and total_value is -sale.total.
- ADJUSTMENT changes stock by a signed non-zero delta, valued at cost.

Product references:
- product_ref: an int is an id; a string is a barcode (digit strings fall
  back to id when no barcode matches).

Failure semantics:
- Input validation happens before the atomic unit opens.
- InsufficientStockError reports the available quantity read inside the
  same transaction; nothing is written.
- No retries here; StorageError goes back to the caller.
"""


def resolve_product(product_ref, *, lock: bool = False) -> Product:
    """
    Find a product from a caller reference.

    An int is a product id. A string is a barcode; an all-digit string that
    matches no barcode is tried as an id.
    """
    if product_ref is None or isinstance(product_ref, bool) or (
        isinstance(product_ref, str) and not product_ref.strip()
    ):
        raise ValidationError("product reference is required", field="product_ref")

    query = db.session.query(Product)
    if lock:
        query = lock_for_update(query).populate_existing()

    product = None
    if isinstance(product_ref, int):
        product = query.filter(Product.id == product_ref).first()
    else:
        barcode = str(product_ref).strip()
        product = query.filter(Product.barcode == barcode).first()
        if product is None and barcode.isdigit():
            product = query.filter(Product.id == int(barcode)).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_ref": product_ref})
    return product


def _validate_quantity(quantity, *, allow_negative: bool = False, field: str = "quantity") -> int:
    quantity = coerce_int(field, quantity)
    if allow_negative:
        if quantity == 0:
            raise ValidationError(f"{field} must be non-zero", field=field)
    elif quantity <= 0:
        raise ValidationError(f"{field} must be > 0", field=field)
    if abs(quantity) > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}", field=field)
    return quantity


def _validate_price(unit_price_cents) -> int | None:
    if unit_price_cents is None:
        return None
    price = coerce_int("unit_price_cents", unit_price_cents)
    if price < 0:
        raise ValidationError("unit_price_cents must be >= 0", field="unit_price_cents")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}", field="unit_price_cents")
    return price


def _apply_stock_delta(product: Product, delta: int) -> None:
    """
    current_stock += delta, refusing to go below zero.

    Must run inside atomic(). The guard lives in the UPDATE's WHERE clause so
    the database evaluates it against the row it is about to write.
    """
    stmt = update(Product).where(Product.id == product.id)
    if delta < 0:
        stmt = stmt.where(Product.current_stock >= -delta)
    stmt = stmt.values(
        current_stock=Product.current_stock + delta,
        version_id=Product.version_id + 1,
    ).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    if result.rowcount != 1:
        available = db.session.query(Product.current_stock).filter(Product.id == product.id).scalar()
        raise InsufficientStockError(available=int(available or 0), requested=-delta)

    db.session.refresh(product)


@observer.observe("add_stock")
def add_stock(
    *,
    product_ref,
    quantity: int,
    unit_price_cents: int | None = None,
    notes: str | None = None,
    created_by: str | None = None,
) -> tuple[Product, StockMovement]:
    """
    Receive stock into a product.

    Returns the refreshed product and the ENTRY movement.
    """
    quantity = _validate_quantity(quantity)
    unit_price_cents = _validate_price(unit_price_cents)

    with atomic():
        product = resolve_product(product_ref, lock=True)
        price = product.cost_price_cents if unit_price_cents is None else unit_price_cents

        _apply_stock_delta(product, quantity)

        movement = StockMovement(
            product_id=product.id,
            type="ENTRY",
            quantity=quantity,
            unit_price_cents=price,
            total_value_cents=compute_stock_value(quantity, price),
            notes=notes or f"Stock entry - {quantity} units",
            created_by=created_by,
        )
        db.session.add(movement)

    return product, movement


@observer.observe("sell_stock")
def sell_stock(
    *,
    product_ref,
    quantity: int,
    unit_price_cents: int | None = None,
    created_by: str | None = None,
) -> tuple[Product, Sale]:
    """
    Sell `quantity` units of a product.

    Price defaults to the product's current sale price and is snapshotted
    into the Sale and its SALE movement together with the tax rate.

    Raises:
        NotFoundError: product_ref does not resolve
        InsufficientStockError: quantity > current_stock (payload has available)
    """
    quantity = _validate_quantity(quantity)
    unit_price_cents = _validate_price(unit_price_cents)

    with atomic():
        product = resolve_product(product_ref, lock=True)
        price = product.sale_price_cents if unit_price_cents is None else unit_price_cents
        tax_rate_bps = product.tax_rate_bps
        amounts = compute_sale_amounts(quantity, price, tax_rate_bps)

        _apply_stock_delta(product, -quantity)

        sale = Sale(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=price,
            tax_rate_bps=tax_rate_bps,
            subtotal_cents=amounts.subtotal_cents,
            tax_amount_cents=amounts.tax_amount_cents,
            total_cents=amounts.total_cents,
        )
        db.session.add(sale)
        db.session.flush()  # sale.id for the movement reference

        db.session.add(
            StockMovement(
                product_id=product.id,
                type="SALE",
                quantity=-quantity,
                unit_price_cents=price,
                total_value_cents=-amounts.total_cents,
                notes=f"Sale #{sale.id}",
                sale_id=sale.id,
                created_by=created_by,
            )
        )

    return product, sale


@observer.observe("adjust_stock")
def adjust_stock(
    *,
    product_ref,
    quantity_delta: int,
    notes: str | None = None,
    created_by: str | None = None,
) -> tuple[Product, StockMovement]:
    """
    Correct stock by a signed delta (count corrections, shrink, found units).

    Valued at the product's cost price. Cannot take stock below zero.
    """
    quantity_delta = _validate_quantity(quantity_delta, allow_negative=True, field="quantity_delta")

    with atomic():
        product = resolve_product(product_ref, lock=True)
        cost = product.cost_price_cents

        _apply_stock_delta(product, quantity_delta)

        movement = StockMovement(
            product_id=product.id,
            type="ADJUSTMENT",
            quantity=quantity_delta,
            unit_price_cents=cost,
            total_value_cents=compute_stock_value(quantity_delta, cost),
            notes=notes or f"Stock adjustment {quantity_delta:+d} units",
            created_by=created_by,
        )
        db.session.add(movement)

    return product, movement


@observer.observe("lookup_by_barcode")
@storage_read
def lookup_by_barcode(barcode: str, *, limit: int | None = None) -> dict:
    """
    Scan-flow lookup: the product plus its most recent movements and sales.

    Returns {"found": False, ...} rather than raising when the barcode is
    unknown; the caller decides between the "known" and "new product" flows.
    """
    if barcode is None or not str(barcode).strip():
        raise ValidationError("barcode is required", field="barcode")
    if limit is None:
        limit = current_app.config.get("RECENT_ACTIVITY_LIMIT", 5)
    if limit < 0:
        raise ValidationError("limit must be >= 0", field="limit")

    product = db.session.query(Product).filter(Product.barcode == str(barcode).strip()).first()
    if product is None:
        return {"found": False, "product": None, "recent_movements": [], "recent_sales": []}

    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product.id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
    sales = (
        db.session.query(Sale)
        .filter(Sale.product_id == product.id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )

    return {
        "found": True,
        "product": product.to_dict(),
        "recent_movements": [m.to_dict() for m in movements],
        "recent_sales": [s.to_dict() for s in sales],
    }


@storage_read
def list_movements(*, product_id: int, limit: int = 200) -> list[StockMovement]:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


@storage_read
def list_sales(
    *,
    start: str | None = None,
    end: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Sales history, newest first; start/end are inclusive ISO-8601 bounds."""
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes", field="start")

    query = db.session.query(Sale)
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)

    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [s.to_dict(include_product=True) for s in sales],
        "count": len(sales),
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
