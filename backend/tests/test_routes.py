import pytest
from sqlalchemy.exc import OperationalError

from scanpos.extensions import db
from scanpos.models import Product, StockMovement


pytestmark = pytest.mark.api


def _create(client, **overrides):
    payload = {
        "barcode": "7501055300075",
        "title": "Cola 600ml",
        "name": "Cola soft drink 600ml bottle",
        "cost_price": "1.00",
        "sale_price": 2,
        "tax_rate": 16,
        "current_stock": 10,
        "min_stock": 2,
    }
    payload.update(overrides)
    return client.post("/api/products", json=payload)


def test_health(client, db_session):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["ledger"]["status"] == "healthy"


def test_create_product_accepts_decimal_aliases(client, db_session):
    response = _create(client)

    assert response.status_code == 201
    body = response.get_json()
    assert body["cost_price_cents"] == 100
    assert body["sale_price_cents"] == 200
    assert body["tax_rate_bps"] == 1600
    assert body["current_stock"] == 10


def test_create_product_validation_errors(client, db_session):
    response = client.post("/api/products", json={"barcode": "X"})
    assert response.status_code == 400
    assert response.get_json()["kind"] == "invalid_argument"

    response = _create(client, sale_price_cents=100)
    assert response.status_code == 400
    assert response.get_json()["field"] == "sale_price"

    response = _create(client, tax_rate=150)
    assert response.status_code == 400
    assert response.get_json()["field"] == "tax_rate_bps"

    response = _create(client, secret="x")
    assert response.status_code == 400


def test_duplicate_barcode_returns_409(client, db_session):
    _create(client)
    response = _create(client)

    assert response.status_code == 409
    assert response.get_json()["kind"] == "conflict"


def test_check_barcode_known_and_unknown(client, db_session):
    _create(client)

    known = client.get("/api/products/check?barcode=7501055300075").get_json()
    assert known["found"] is True
    assert known["recent_movements"][0]["notes"] == "Opening stock"

    unknown = client.get("/api/products/check?barcode=0000").get_json()
    assert unknown["found"] is False

    assert client.get("/api/products/check").status_code == 400


def test_sell_flow_by_id_and_barcode(client, db_session):
    product_id = _create(client).get_json()["id"]

    response = client.post(f"/api/products/{product_id}/sell", json={"quantity": 3})
    assert response.status_code == 201
    body = response.get_json()
    assert body["sale"]["total_cents"] == 696
    assert body["product"]["current_stock"] == 7

    response = client.post("/api/sales", json={"barcode": "7501055300075", "quantity": 2})
    assert response.status_code == 201
    assert response.get_json()["product"]["current_stock"] == 5

    listing = client.get("/api/sales").get_json()
    assert listing["pagination"]["total"] == 2
    assert listing["items"][0]["quantity"] == 2


def test_oversell_returns_available(client, db_session):
    product_id = _create(client, current_stock=7).get_json()["id"]

    response = client.post(f"/api/products/{product_id}/sell", json={"quantity": 100})

    assert response.status_code == 409
    body = response.get_json()
    assert body["kind"] == "insufficient_stock"
    assert body["available"] == 7
    assert body["requested"] == 100


def test_sell_rejects_bad_quantity(client, db_session):
    product_id = _create(client).get_json()["id"]

    for quantity in (0, -2, 1.5, "3.0", None):
        response = client.post(f"/api/products/{product_id}/sell", json={"quantity": quantity})
        assert response.status_code == 400, quantity


def test_add_stock_by_barcode(client, db_session):
    _create(client)

    response = client.post(
        "/api/stock/add",
        json={"barcode": "7501055300075", "quantity": 5, "unit_price": "1.20", "notes": "Invoice 42"},
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["product"]["current_stock"] == 15
    assert body["movement"]["total_value_cents"] == 600
    assert body["movement"]["notes"] == "Invoice 42"


def test_add_stock_unknown_barcode_is_404(client, db_session):
    response = client.post("/api/stock/add", json={"barcode": "404404", "quantity": 1})

    assert response.status_code == 404
    assert response.get_json()["kind"] == "not_found"


def test_adjust_and_movements(client, db_session):
    product_id = _create(client).get_json()["id"]

    response = client.post(f"/api/products/{product_id}/adjust", json={"quantity_delta": -4, "notes": "Count"})
    assert response.status_code == 201
    assert response.get_json()["product"]["current_stock"] == 6

    movements = client.get(f"/api/products/{product_id}/movements").get_json()
    assert [m["type"] for m in movements["items"]] == ["ADJUSTMENT", "ENTRY"]


def test_update_and_delete_product(client, db_session):
    product_id = _create(client, current_stock=0).get_json()["id"]

    response = client.put(f"/api/products/{product_id}", json={"title": "Cola 1L", "sale_price": "2.50"})
    assert response.status_code == 200
    assert response.get_json()["sale_price_cents"] == 250

    response = client.put(f"/api/products/{product_id}", json={"current_stock": 50})
    assert response.status_code == 400

    assert client.delete(f"/api/products/{product_id}").status_code == 200
    assert client.get(f"/api/products/{product_id}").status_code == 404


def test_delete_product_with_movements_is_409(client, db_session):
    product_id = _create(client).get_json()["id"]

    response = client.delete(f"/api/products/{product_id}")

    assert response.status_code == 409
    assert db_session.query(StockMovement).filter_by(product_id=product_id).count() == 1


def test_list_products_paginated(client, db_session):
    for i in range(3):
        _create(client, barcode=f"750000000000{i}", title=f"Item {i}")

    body = client.get("/api/products?page=1&per_page=2&sort_by=title&sort_order=asc").get_json()

    assert [p["title"] for p in body["items"]] == ["Item 0", "Item 1"]
    assert body["pagination"]["total"] == 3

    assert client.get("/api/products?sort_by=nope").status_code == 400


def test_reports_and_stats(client, db_session):
    product_id = _create(client).get_json()["id"]
    client.post(f"/api/products/{product_id}/sell", json={"quantity": 3})

    report = client.get("/api/reports?period=all").get_json()
    assert report["sales"]["total_cents"] == 696
    assert report["top_products"][0]["total_quantity"] == 3

    assert client.get("/api/reports?period=yearly").status_code == 400

    stats = client.get("/api/stats").get_json()
    assert stats["today_sales"]["total_cents"] == 696
    assert stats["inventory_value_at_cost_cents"] == 700


def test_catalog_crud(client, db_session):
    response = client.post("/api/categories", json={"name": "Beverages"})
    assert response.status_code == 201
    category_id = response.get_json()["id"]

    assert client.post("/api/categories", json={"name": "beverages"}).status_code == 409
    assert client.post("/api/categories", json={}).status_code == 400

    _create(client, category_id=category_id)
    assert client.delete(f"/api/categories/{category_id}").status_code == 409

    supplier = client.post("/api/suppliers", json={"name": "Acme", "email": "a@acme.local"}).get_json()
    response = client.put(f"/api/suppliers/{supplier['id']}", json={"phone": "555-0199"})
    assert response.get_json()["phone"] == "555-0199"
    assert client.get("/api/suppliers").get_json()["count"] == 1
    assert client.delete(f"/api/suppliers/{supplier['id']}").status_code == 200
    assert client.get(f"/api/suppliers/{supplier['id']}").status_code == 404


def test_create_with_missing_category_is_404(client, db_session):
    response = _create(client, category_id=999)

    assert response.status_code == 404
    assert db_session.query(Product).count() == 0


def test_oversized_decimal_amounts_are_400(client, db_session):
    response = _create(client, sale_price="1e30")
    assert response.status_code == 400
    assert response.get_json()["field"] == "sale_price"

    response = _create(client, tax_rate=1e30)
    assert response.status_code == 400
    assert response.get_json()["field"] == "tax_rate"

    _create(client)
    response = client.post("/api/sales", json={"barcode": "7501055300075", "quantity": 1, "unit_price": 1e30})
    assert response.status_code == 400
    assert response.get_json()["kind"] == "invalid_argument"
    assert response.get_json()["field"] == "unit_price"


def test_read_routes_answer_internal_when_storage_fails(client, db_session, monkeypatch):
    def _unreachable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    monkeypatch.setattr(db.session, "query", _unreachable)
    monkeypatch.setattr(db.session, "get", _unreachable)

    for url in (
        "/api/reports?period=all",
        "/api/stats",
        "/api/products",
        "/api/products/1",
        "/api/products/check?barcode=7501055300075",
        "/api/products/1/movements",
        "/api/sales",
        "/api/categories",
        "/api/suppliers/1",
    ):
        response = client.get(url)
        assert response.status_code == 500, url
        assert response.get_json() == {"error": "Internal server error", "kind": "internal"}, url


def test_cors_headers_only_for_dev_origins(client, db_session):
    response = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    assert response.headers["Vary"] == "Origin"

    response = client.get("/api/health", headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in response.headers
