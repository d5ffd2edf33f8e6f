from __future__ import annotations

from ..extensions import db
from scanpos.time_utils import to_utc_z, utcnow

MOVEMENT_TYPES = ("ENTRY", "SALE", "ADJUSTMENT")


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    BARCODE:
    Product.barcode is the business key the scanner produces. It is unique
    across all products and immutable once set (not in the update policy).

    STOCK:
    current_stock is a materialized cache of SUM(stock_movements.quantity) for
    the product. It is only ever changed by the stock service, in the same DB
    transaction that appends the matching StockMovement. Attribute edits never
    touch it. The check constraint keeps it from going negative even if a
    caller bypasses the service.

    MONEY:
    Prices are integer cents; tax rate is integer basis points (1600 = 16%).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_title", "title"),
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_non_negative"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_non_negative"),
        db.CheckConstraint("sale_price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint(
            "tax_rate_bps >= 0 AND tax_rate_bps <= 10000", name="ck_products_tax_rate_range"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    barcode = db.Column(db.String(128), nullable=False, unique=True)
    title = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} title={self.title!r} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "title": self.title,
            "name": self.name,
            "description": self.description,
            "cost_price_cents": self.cost_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "category_id": self.category_id,
            "supplier_id": self.supplier_id,
            "category": {"id": self.category.id, "name": self.category.name} if self.category else None,
            "supplier": {"id": self.supplier.id, "name": self.supplier.name} if self.supplier else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    quantity is signed: ENTRY > 0, SALE < 0, ADJUSTMENT either sign (never 0).
    total_value_cents carries the same sign as quantity. For SALE rows it is
    the negated sale total (tax included); for ENTRY/ADJUSTMENT rows it is
    quantity * unit_price_cents.

    Rows are written once by the stock service and never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_quantity_non_zero"),
        db.CheckConstraint(
            "type IN ('ENTRY', 'SALE', 'ADJUSTMENT')", name="ck_stock_movements_type"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_value_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)

    # Set only for SALE rows; one movement per sale
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_by = db.Column(db.String(120), nullable=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("movement", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_value_cents": self.total_value_cents,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
