# Overview: Service-layer operations for categories and suppliers (product reference data).

"""
Catalog Service

Categories and suppliers are optional reference data on Product. Names are
unique per table. A row that products still point at cannot be deleted;
callers reassign or clear the products first.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Supplier, Product
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import atomic, storage_read

CATALOG_MODELS = {
    "category": (Category, Product.category_id),
    "supplier": (Supplier, Product.supplier_id),
}


def _model_for(kind: str):
    try:
        return CATALOG_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown catalog kind: {kind}")


def _label(kind: str) -> str:
    return kind.capitalize()


@storage_read
def list_entries(kind: str, *, search: str | None = None) -> list:
    model, _ = _model_for(kind)
    query = db.session.query(model)
    if search:
        query = query.filter(func.lower(model.name).like(f"%{search.strip().lower()}%"))
    return query.order_by(model.name.asc(), model.id.asc()).all()


@storage_read
def get_entry(kind: str, entry_id: int):
    model, _ = _model_for(kind)
    entry = db.session.get(model, entry_id)
    if entry is None:
        raise NotFoundError(f"{_label(kind)} not found")
    return entry


def _ensure_unique_name(kind: str, name: str, *, exclude_id: int | None = None) -> None:
    model, _ = _model_for(kind)
    query = db.session.query(model.id).filter(func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(
            f"A {kind} with this name already exists", details={"name": name}
        )


def create_entry(kind: str, *, patch: dict):
    """
    Create a category or supplier from a validated patch.

    Raises:
        ValidationError: name missing or blank
        ConflictError: name already used (case-insensitive)
    """
    model, _ = _model_for(kind)
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", field="name")

    with atomic(conflict_message=f"A {kind} with this name already exists"):
        _ensure_unique_name(kind, name)
        entry = model(**{**patch, "name": name})
        db.session.add(entry)

    return entry


def update_entry(kind: str, *, entry_id: int, patch: dict):
    if "name" in patch:
        name = (patch.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be blank", field="name")
        patch = {**patch, "name": name}

    with atomic(conflict_message=f"A {kind} with this name already exists"):
        entry = get_entry(kind, entry_id)
        if "name" in patch:
            _ensure_unique_name(kind, patch["name"], exclude_id=entry.id)
        for key, value in patch.items():
            setattr(entry, key, value)

    return entry


def delete_entry(kind: str, *, entry_id: int) -> None:
    """Delete a category or supplier no product references."""
    _, product_fk = _model_for(kind)

    with atomic():
        entry = get_entry(kind, entry_id)
        in_use = db.session.query(func.count(Product.id)).filter(product_fk == entry.id).scalar()
        if in_use:
            raise ConflictError(
                f"Cannot delete a {kind} that is assigned to products",
                details={"products": int(in_use)},
            )
        db.session.delete(entry)
