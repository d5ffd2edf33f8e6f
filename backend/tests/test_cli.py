import pytest

from scanpos.cli import DEMO_PRODUCTS, DEMO_SALES
from scanpos.models import Product, Sale
from scanpos.services.reporting_service import reconcile_ledger


pytestmark = pytest.mark.cli


def test_init_db_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init-db"])

    assert result.exit_code == 0
    assert "Database ready" in result.output


def test_seed_demo_loads_consistent_ledger(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed-demo"])

    assert result.exit_code == 0, result.output
    assert db_session.query(Product).count() == len(DEMO_PRODUCTS)
    assert db_session.query(Sale).count() == len(DEMO_SALES)
    assert reconcile_ledger() == []

    again = runner.invoke(args=["system", "seed-demo"])
    assert again.exit_code == 0
    assert "already exists" in again.output
    assert db_session.query(Sale).count() == len(DEMO_SALES)


def test_reconcile_clean_and_drifted(app, db_session, make_product):
    runner = app.test_cli_runner()
    p = make_product(current_stock=4)

    result = runner.invoke(args=["stock", "reconcile"])
    assert result.exit_code == 0
    assert "All products match" in result.output

    db_session.query(Product).filter(Product.id == p.id).update({"current_stock": 1})
    db_session.commit()

    result = runner.invoke(args=["stock", "reconcile"])
    assert result.exit_code == 1
    assert f"#{p.id}" in result.output
    assert "drift=-3" in result.output


def test_reset_db_requires_confirmation(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "reset-db"], input="n\n")

    assert result.exit_code != 0
