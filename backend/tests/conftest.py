"""
Pytest fixtures for ScanPOS backend tests.

Provides an in-memory application, a per-test clean database, the test
client and small product factories built on the real service layer.
"""

import pytest
from scanpos import create_app
from scanpos.extensions import db, observer
from scanpos.models import Category, Supplier
from scanpos.services.products_service import create_product


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "engine: Stock transaction engine tests")
    config.addinivalue_line("markers", "reporting: Report and stats aggregation tests")
    config.addinivalue_line("markers", "api: HTTP route tests")
    config.addinivalue_line("markers", "cli: Flask CLI command tests")
    config.addinivalue_line("markers", "concurrent: Concurrency tests")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_JSON': False,
        'LOCAL_TIMEZONE': 'UTC',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def events(app):
    """Operation events emitted during the test."""
    with observer.recording() as recorded:
        yield recorded


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory for products created through create_product.

    Defaults: cost 1.00, price 2.00, tax 16%, no opening stock.
    """
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        patch = {
            "barcode": f"75000000{counter['n']:05d}",
            "title": f"Product {counter['n']}",
            "name": f"Test product {counter['n']}",
            "cost_price_cents": 100,
            "sale_price_cents": 200,
            "tax_rate_bps": 1600,
            "current_stock": 0,
            "min_stock": 0,
        }
        patch.update(overrides)
        return create_product(patch=patch)

    return _make


@pytest.fixture(scope='function')
def category(db_session):
    """Create a category."""
    c = Category(name="Beverages")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def supplier(db_session):
    """Create a supplier."""
    s = Supplier(name="Northwind Distribution", email="orders@northwind.local")
    db_session.add(s)
    db_session.commit()
    return s
