# Overview: Flask API route for receiving stock by scanned barcode.

from flask import Blueprint, request, current_app

from ..services import stock_service
from ..validation import parse_stock_entry, ServiceError, StorageError


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/add")
def add_stock_by_barcode():
    """
    Receive stock for a scanned product.

    Body:
    {
        "barcode": "7501234567890",   // required (or product_ref)
        "quantity": 10,               // required, > 0
        "unit_price_cents": 1200,     // optional, defaults to cost price
        "notes": "Invoice 42"         // optional
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        req = parse_stock_entry(payload)
        product, movement = stock_service.add_stock(
            product_ref=req.product_ref,
            quantity=req.quantity,
            unit_price_cents=req.unit_price_cents,
            notes=req.notes,
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return StorageError().to_dict(), 500

    return {"product": product.to_dict(), "movement": movement.to_dict()}, 201
