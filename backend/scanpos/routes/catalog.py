# Overview: Flask API routes for categories and suppliers; parses input and returns JSON responses.

"""
Catalog Routes

Categories and suppliers share one CRUD shape, so both blueprints are built
by make_catalog_blueprint(). Deleting an entry that products still reference
answers 409.
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import Category, Supplier
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload, ServiceError, StorageError


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name"},
)


def make_catalog_blueprint(kind: str, model, policy: ModelValidationPolicy, url_prefix: str) -> Blueprint:
    bp = Blueprint(f"{kind}_catalog", __name__, url_prefix=url_prefix)

    @bp.get("")
    def list_route():
        """
        Query parameters:
        - search: case-insensitive name filter

        Returns:
            {items: [...], count: int}
        """
        try:
            entries = catalog_service.list_entries(kind, search=request.args.get("search"))
        except ServiceError as e:
            return jsonify(e.to_dict()), e.status_code
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})

    @bp.get("/<int:entry_id>")
    def get_route(entry_id: int):
        try:
            return jsonify(catalog_service.get_entry(kind, entry_id).to_dict())
        except ServiceError as e:
            return jsonify(e.to_dict()), e.status_code

    @bp.post("")
    def create_route():
        data = request.get_json(silent=True) or {}

        try:
            patch = validate_payload(model=model, payload=data, policy=policy, partial=False)
            entry = catalog_service.create_entry(kind, patch=patch)
        except ServiceError as e:
            return jsonify(e.to_dict()), e.status_code
        except Exception:
            current_app.logger.exception("Failed to create %s", kind)
            return jsonify(StorageError().to_dict()), 500

        return jsonify(entry.to_dict()), 201

    @bp.put("/<int:entry_id>")
    def update_route(entry_id: int):
        data = request.get_json(silent=True) or {}

        try:
            patch = validate_payload(model=model, payload=data, policy=policy, partial=True)
            entry = catalog_service.update_entry(kind, entry_id=entry_id, patch=patch)
        except ServiceError as e:
            return jsonify(e.to_dict()), e.status_code
        except Exception:
            current_app.logger.exception("Failed to update %s %s", kind, entry_id)
            return jsonify(StorageError().to_dict()), 500

        return jsonify(entry.to_dict()), 200

    @bp.delete("/<int:entry_id>")
    def delete_route(entry_id: int):
        try:
            catalog_service.delete_entry(kind, entry_id=entry_id)
        except ServiceError as e:
            return jsonify(e.to_dict()), e.status_code
        except Exception:
            current_app.logger.exception("Failed to delete %s %s", kind, entry_id)
            return jsonify(StorageError().to_dict()), 500

        return jsonify({"ok": True}), 200

    return bp


categories_bp = make_catalog_blueprint("category", Category, CATEGORY_POLICY, "/api/categories")
suppliers_bp = make_catalog_blueprint("supplier", Supplier, SUPPLIER_POLICY, "/api/suppliers")
