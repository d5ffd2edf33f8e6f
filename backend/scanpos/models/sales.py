from __future__ import annotations

from ..extensions import db
from scanpos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Completed sale of one product.

    Immutable once written. Amounts are snapshotted at the moment of sale
    (unit price, tax rate, subtotal, tax, total) and never recalculated.
    Every Sale is paired with exactly one SALE StockMovement
    (StockMovement.sale_id), written in the same DB transaction.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint(
            "subtotal_cents + tax_amount_cents = total_cents",
            name="ck_sales_total_matches",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_amount_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("sales", lazy=True))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} product_id={self.product_id} qty={self.quantity} total={self.total_cents}>"

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "subtotal_cents": self.subtotal_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
        }
        if include_product and self.product is not None:
            data["product"] = {
                "id": self.product.id,
                "barcode": self.product.barcode,
                "title": self.product.title,
                "name": self.product.name,
            }
        return data
