import pytest

from scanpos.models import Product, StockMovement
from scanpos.services import products_service, stock_service
from scanpos.validation import ConflictError, NotFoundError, ValidationError


pytestmark = pytest.mark.engine


def test_create_product_with_opening_stock_writes_entry_movement(db_session, make_product):
    p = make_product(barcode="123", current_stock=10, min_stock=2)

    assert p.current_stock == 10
    movements = db_session.query(StockMovement).filter_by(product_id=p.id).all()
    assert len(movements) == 1
    assert movements[0].type == "ENTRY"
    assert movements[0].quantity == 10
    assert movements[0].unit_price_cents == 100
    assert movements[0].total_value_cents == 1000
    assert movements[0].notes == products_service.OPENING_STOCK_NOTE


def test_create_product_without_stock_writes_no_movement(db_session, make_product):
    p = make_product()

    assert p.current_stock == 0
    assert db_session.query(StockMovement).filter_by(product_id=p.id).count() == 0


def test_duplicate_barcode_is_conflict(db_session, make_product):
    make_product(barcode="DUP-1")

    with pytest.raises(ConflictError):
        make_product(barcode="DUP-1")

    assert db_session.query(Product).filter_by(barcode="DUP-1").count() == 1


@pytest.mark.parametrize("missing", ["barcode", "title", "name"])
def test_create_requires_identity_fields(db_session, make_product, missing):
    with pytest.raises(ValidationError) as exc:
        make_product(**{missing: ""})
    assert exc.value.field == missing


def test_create_with_unknown_category_is_not_found(db_session, make_product):
    with pytest.raises(NotFoundError):
        make_product(category_id=9999)
    assert db_session.query(Product).count() == 0


def test_create_links_category_and_supplier(db_session, make_product, category, supplier):
    p = make_product(category_id=category.id, supplier_id=supplier.id)

    data = p.to_dict()
    assert data["category"] == {"id": category.id, "name": "Beverages"}
    assert data["supplier"]["name"] == "Northwind Distribution"


def test_update_product_edits_attributes(db_session, make_product):
    p = make_product(current_stock=4)

    updated = products_service.update_product(
        product_id=p.id, patch={"title": "Renamed", "sale_price_cents": 350, "min_stock": 6}
    )

    assert updated.title == "Renamed"
    assert updated.sale_price_cents == 350
    assert updated.current_stock == 4
    assert updated.is_low_stock is True


@pytest.mark.parametrize("field,value", [("current_stock", 99), ("barcode", "NEW")])
def test_update_rejects_stock_and_barcode(db_session, make_product, field, value):
    p = make_product(current_stock=4)

    with pytest.raises(ValidationError) as exc:
        products_service.update_product(product_id=p.id, patch={field: value})
    assert exc.value.field == field

    db_session.expire_all()
    assert db_session.get(Product, p.id).current_stock == 4


def test_update_missing_product_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        products_service.update_product(product_id=424242, patch={"title": "x"})


def test_delete_product_without_history(db_session, make_product):
    p = make_product()
    product_id = p.id

    products_service.delete_product(product_id=product_id)

    assert db_session.get(Product, product_id) is None


def test_delete_product_with_history_is_blocked(db_session, make_product):
    p = make_product(current_stock=3)
    stock_service.sell_stock(product_ref=p.id, quantity=1)

    with pytest.raises(ConflictError) as exc:
        products_service.delete_product(product_id=p.id)

    assert exc.value.details == {"movements": 2, "sales": 1}
    assert db_session.get(Product, p.id) is not None


def test_list_products_search_and_pagination(db_session, make_product):
    make_product(barcode="A-1", title="Cola 600ml")
    make_product(barcode="A-2", title="Cola Zero")
    make_product(barcode="B-1", title="Chips")

    result = products_service.list_products(search="cola", sort_by="title", sort_order="asc")
    assert [p["title"] for p in result["items"]] == ["Cola 600ml", "Cola Zero"]
    assert "pagination" not in result

    paged = products_service.list_products(page=2, per_page=2, sort_by="barcode", sort_order="asc")
    assert [p["barcode"] for p in paged["items"]] == ["B-1"]
    assert paged["pagination"]["total"] == 3
    assert paged["pagination"]["total_pages"] == 2
    assert paged["pagination"]["has_prev"] is True
    assert paged["pagination"]["has_next"] is False


def test_list_products_rejects_unknown_sort(db_session):
    with pytest.raises(ValidationError):
        products_service.list_products(sort_by="cost_price_cents; DROP TABLE products")


def test_create_emits_operation_event(db_session, make_product, events):
    make_product(barcode="EVT-1")
    with pytest.raises(ConflictError):
        make_product(barcode="EVT-1")

    outcomes = [(e.operation, e.outcome) for e in events]
    assert outcomes == [("create_product", "ok"), ("create_product", "conflict")]


def test_barcode_race_past_precheck_is_conflict(db_session, make_product, monkeypatch):
    make_product(barcode="RACE-1")
    # Another writer inserted the same barcode after our existence check
    monkeypatch.setattr(products_service, "_barcode_taken", lambda barcode: False)

    with pytest.raises(ConflictError) as exc:
        make_product(barcode="RACE-1", current_stock=3)

    assert exc.value.kind == "conflict"
    assert "barcode" in str(exc.value)
    assert db_session.query(Product).filter_by(barcode="RACE-1").count() == 1
    assert db_session.query(StockMovement).count() == 0
