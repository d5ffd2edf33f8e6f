# backend/scanpos/services/products_service.py
"""
Product master data operations.

create_product seeds the ledger: when opening stock is > 0 the product row and
its ENTRY movement are written in one atomic unit, so current_stock always
equals the sum of the product's movements from the first moment it exists.

update_product never touches current_stock or barcode. delete_product refuses
to orphan ledger rows.
"""
from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db, observer
from ..models import Product, StockMovement, Sale, Category, Supplier
from ..validation import ConflictError, NotFoundError, ValidationError
from .calculations import compute_stock_value
from .concurrency import atomic, storage_read

PRODUCT_CREATE_FIELDS = {
    "barcode", "title", "name", "description",
    "cost_price_cents", "sale_price_cents", "tax_rate_bps",
    "current_stock", "min_stock", "category_id", "supplier_id",
}

PRODUCT_MUTABLE_FIELDS = PRODUCT_CREATE_FIELDS - {"barcode", "current_stock"}

OPENING_STOCK_NOTE = "Opening stock"

SORTABLE_FIELDS = {"created_at", "title", "name", "barcode", "current_stock", "sale_price_cents"}


def apply_product_patch(p: Product, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(p, k, v)


def _ensure_references(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFoundError("Category not found", details={"category_id": category_id})

    supplier_id = patch.get("supplier_id")
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})


@storage_read
def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFoundError("Product not found")
    return p


@storage_read
def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    supplier_id: int | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional search/filter and pagination.

    Args:
        search: case-insensitive substring of barcode, title or name
        category_id / supplier_id: exact filters
        sort_by: one of SORTABLE_FIELDS
        sort_order: "asc" or "desc"
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"sort_by must be one of {', '.join(sorted(SORTABLE_FIELDS))}", field="sort_by")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc", field="sort_order")

    base_query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip().lower()}%"
        base_query = base_query.filter(
            or_(
                func.lower(Product.barcode).like(pattern),
                func.lower(Product.title).like(pattern),
                func.lower(Product.name).like(pattern),
            )
        )
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    if supplier_id is not None:
        base_query = base_query.filter(Product.supplier_id == supplier_id)

    column = getattr(Product, sort_by)
    order = column.asc() if sort_order == "asc" else column.desc()
    base_query = base_query.order_by(order, Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

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


def _barcode_taken(barcode: str) -> bool:
    return db.session.query(Product.id).filter(Product.barcode == barcode).first() is not None


@observer.observe("create_product")
def create_product(*, patch: dict, created_by: str | None = None) -> Product:
    """
    Create a product from a validated patch dict, seeding the ledger.

    Raises:
        ValidationError: barcode/title/name missing
        ConflictError: barcode already exists (pre-check or unique index race)
        NotFoundError: category_id / supplier_id does not exist
        StorageError: the atomic write failed
    """
    for key in ("barcode", "title", "name"):
        if not patch.get(key):
            raise ValidationError(f"{key} is required", field=key)

    opening_stock = patch.get("current_stock") or 0
    if opening_stock < 0:
        raise ValidationError("current_stock must be >= 0", field="current_stock")

    with atomic(conflict_message="A product with this barcode already exists"):
        if _barcode_taken(patch["barcode"]):
            raise ConflictError(
                "A product with this barcode already exists",
                details={"barcode": patch["barcode"]},
            )
        _ensure_references(patch)

        p = Product(current_stock=opening_stock)
        apply_product_patch(p, patch, PRODUCT_CREATE_FIELDS - {"current_stock"})
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the ledger append

        if opening_stock > 0:
            cost = p.cost_price_cents or 0
            db.session.add(
                StockMovement(
                    product_id=p.id,
                    type="ENTRY",
                    quantity=opening_stock,
                    unit_price_cents=cost,
                    total_value_cents=compute_stock_value(opening_stock, cost),
                    notes=OPENING_STOCK_NOTE,
                    created_by=created_by,
                )
            )

    return p


@observer.observe("update_product")
def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Edit product attributes. Stock and barcode are not editable here.

    Raises:
        ValidationError: patch names barcode or current_stock
        NotFoundError: product, category or supplier missing
    """
    for key in ("barcode", "current_stock"):
        if key in patch:
            raise ValidationError(f"{key} cannot be changed on an existing product", field=key)
    for key in ("title", "name"):
        if key in patch and not patch[key]:
            raise ValidationError(f"{key} cannot be blank", field=key)

    with atomic():
        p = get_product(product_id)
        _ensure_references(patch)
        apply_product_patch(p, patch, PRODUCT_MUTABLE_FIELDS)

    return p


@observer.observe("delete_product")
def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product that has no ledger history.

    Products with stock movements or sales are kept; deleting them would
    orphan ledger rows.
    """
    with atomic():
        p = get_product(product_id)

        movement_count = db.session.query(func.count(StockMovement.id)).filter(
            StockMovement.product_id == p.id
        ).scalar()
        sale_count = db.session.query(func.count(Sale.id)).filter(Sale.product_id == p.id).scalar()
        if movement_count or sale_count:
            raise ConflictError(
                "Cannot delete a product with stock movements or sales",
                details={"movements": int(movement_count or 0), "sales": int(sale_count or 0)},
            )

        db.session.delete(p)
