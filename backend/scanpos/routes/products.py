# Overview: Flask API routes for products and per-product stock operations; parses input and returns JSON responses.

# backend/scanpos/routes/products.py
"""
Product management routes.

Product master data (create, edit, delete, list, barcode check) plus the
per-product stock endpoints (receive, sell, adjust, movement history).
Stock is never written through PUT; only the stock endpoints change it.
"""
from flask import Blueprint, request, current_app
from ..services.products_service import (
    list_products as list_products_service,
    get_product,
    PRODUCT_CREATE_FIELDS,
)
from ..services import stock_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    normalize_decimal_aliases,
    enforce_rules_product,
    parse_stock_entry,
    parse_sale,
    parse_adjustment,
    ServiceError,
    StorageError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(PRODUCT_CREATE_FIELDS),
    required_on_create={"barcode", "title", "name"},
)

# NOTE: MAX_PRICE_CENTS is defined in validation.py and enforced by enforce_rules_product()

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with optional search, filters and pagination.

    Query params:
    - search: str (optional) - substring of barcode, title or name
    - category_id / supplier_id: int (optional)
    - sort_by: str (optional) - created_at, title, name, barcode, current_stock, sale_price_cents
    - sort_order: asc | desc (default desc)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        return list_products_service(
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            supplier_id=request.args.get("supplier_id", type=int),
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc").lower(),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code


@products_bp.post("")
def create_product_route():
    """
    Create a new product.

    Prices may be sent as integer cents (sale_price_cents) or decimals
    (sale_price); tax as basis points (tax_rate_bps) or percent (tax_rate).
    A positive current_stock is recorded as an opening ENTRY movement.
    """
    payload = request.get_json(silent=True) or {}

    try:
        payload = normalize_decimal_aliases(payload)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
    except ServiceError as e:
        return e.to_dict(), e.status_code

    from ..services.products_service import create_product

    try:
        created = create_product(patch=patch)
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return StorageError().to_dict(), 500

    return created.to_dict(), 201


@products_bp.get("/check")
def check_barcode():
    """
    Scan-flow lookup.

    Query params:
    - barcode: str (required)
    - limit: int (optional) - recent movements/sales to include

    Always 200 for a well-formed request; "found" tells known from new.
    """
    try:
        return stock_service.lookup_by_barcode(
            request.args.get("barcode", ""),
            limit=request.args.get("limit", type=int),
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return get_product(product_id).to_dict()
    except ServiceError as e:
        return e.to_dict(), e.status_code


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    """
    Update product attributes.

    barcode and current_stock are rejected; use the stock endpoints.
    """
    payload = request.get_json(silent=True) or {}

    try:
        payload = normalize_decimal_aliases(payload)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ServiceError as e:
        return e.to_dict(), e.status_code

    from ..services.products_service import update_product

    try:
        updated = update_product(product_id=product_id, patch=patch)
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return StorageError().to_dict(), 500

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Delete a product that has no stock movements or sales."""
    from ..services.products_service import delete_product

    try:
        delete_product(product_id=product_id)
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return StorageError().to_dict(), 500

    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/stock")
def add_stock_route(product_id: int):
    """
    Receive stock.

    Body: {"quantity": int, "unit_price_cents"?: int, "notes"?: str}
    """
    payload = request.get_json(silent=True) or {}

    try:
        req = parse_stock_entry(payload, product_ref=product_id)
        product, movement = stock_service.add_stock(
            product_ref=req.product_ref,
            quantity=req.quantity,
            unit_price_cents=req.unit_price_cents,
            notes=req.notes,
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock to product %s", product_id)
        return StorageError().to_dict(), 500

    return {"product": product.to_dict(), "movement": movement.to_dict()}, 201


@products_bp.post("/<int:product_id>/sell")
def sell_route(product_id: int):
    """
    Sell units of a product.

    Body: {"quantity": int, "unit_price_cents"?: int}
    409 insufficient_stock carries "available".
    """
    payload = request.get_json(silent=True) or {}

    try:
        req = parse_sale(payload, product_ref=product_id)
        product, sale = stock_service.sell_stock(
            product_ref=req.product_ref,
            quantity=req.quantity,
            unit_price_cents=req.unit_price_cents,
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sell product %s", product_id)
        return StorageError().to_dict(), 500

    return {"product": product.to_dict(), "sale": sale.to_dict()}, 201


@products_bp.post("/<int:product_id>/adjust")
def adjust_route(product_id: int):
    """
    Correct stock by a signed delta.

    Body: {"quantity_delta": int (non-zero), "notes"?: str}
    """
    payload = request.get_json(silent=True) or {}

    try:
        req = parse_adjustment(payload, product_ref=product_id)
        product, movement = stock_service.adjust_stock(
            product_ref=req.product_ref,
            quantity_delta=req.quantity_delta,
            notes=req.notes,
        )
    except ServiceError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust product %s", product_id)
        return StorageError().to_dict(), 500

    return {"product": product.to_dict(), "movement": movement.to_dict()}, 201


@products_bp.get("/<int:product_id>/movements")
def list_movements_route(product_id: int):
    limit = request.args.get("limit", 200, type=int)
    limit = max(1, min(limit, 500))

    try:
        movements = stock_service.list_movements(product_id=product_id, limit=limit)
    except ServiceError as e:
        return e.to_dict(), e.status_code

    return {"items": [m.to_dict() for m in movements], "count": len(movements)}
