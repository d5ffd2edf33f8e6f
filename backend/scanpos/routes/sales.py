# Overview: Flask API routes for sales history and barcode checkout.

from flask import Blueprint, request, current_app

from ..services import stock_service
from ..validation import parse_sale, ServiceError, StorageError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    """
    Sales history, newest first.

    Query params:
    - start / end: ISO-8601 datetimes (optional, inclusive)
    - page: int (default 1)
    - per_page: int (default 20, max 100)
    """
    try:
        return stock_service.list_sales(
            start=request.args.get("start"),
            end=request.args.get("end"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code


@sales_bp.post("")
def create_sale_route():
    """
    Checkout one scanned product.

    Body: {"barcode": str, "quantity": int, "unit_price_cents"?: int}
    Decimal "unit_price" is accepted in place of unit_price_cents.
    """
    payload = request.get_json(silent=True) or {}

    try:
        req = parse_sale(payload)
        product, sale = stock_service.sell_stock(
            product_ref=req.product_ref,
            quantity=req.quantity,
            unit_price_cents=req.unit_price_cents,
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return StorageError().to_dict(), 500

    return {"product": product.to_dict(), "sale": sale.to_dict()}, 201
