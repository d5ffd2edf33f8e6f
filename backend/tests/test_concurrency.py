"""
Threaded oversell tests against a file-backed SQLite database.

Each worker pushes its own app context (and so gets its own session and
connection), the way concurrent requests would.
"""
import os
import tempfile
import threading
import unittest

import pytest

from scanpos import create_app
from scanpos.extensions import db
from scanpos.models import Product, Sale, StockMovement
from scanpos.services import stock_service
from scanpos.services.products_service import create_product
from scanpos.services.reporting_service import reconcile_ledger
from scanpos.validation import InsufficientStockError


@pytest.mark.concurrent
class ConcurrentSellTests(unittest.TestCase):
    STOCK = 5
    WORKERS = 12

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            # Writers queue on the database lock instead of failing fast
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "LOG_JSON": False,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = create_product(patch={
                "barcode": "CONCUR-1",
                "title": "Concurrent Product",
                "name": "Concurrent Product",
                "cost_price_cents": 400,
                "sale_price_cents": 1000,
                "tax_rate_bps": 1600,
                "current_stock": self.STOCK,
            })
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, target, count):
        barrier = threading.Barrier(count)
        threads = [threading.Thread(target=target, args=(barrier,)) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_concurrent_sells_never_oversell(self):
        results = []
        lock = threading.Lock()

        def worker(barrier):
            with self.app.app_context():
                try:
                    barrier.wait()
                    stock_service.sell_stock(product_ref=self.product_id, quantity=1)
                    with lock:
                        results.append("sold")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        self._run_workers(worker, self.WORKERS)

        sold = [r for r in results if r == "sold"]
        insufficient = [r for r in results if isinstance(r, InsufficientStockError)]
        unexpected = [r for r in results if r != "sold" and not isinstance(r, InsufficientStockError)]

        self.assertFalse(unexpected)
        self.assertEqual(len(sold), self.STOCK)
        self.assertEqual(len(insufficient), self.WORKERS - self.STOCK)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.current_stock, 0)
            self.assertEqual(db.session.query(Sale).count(), self.STOCK)
            self.assertEqual(
                db.session.query(StockMovement).filter_by(type="SALE").count(), self.STOCK
            )
            self.assertEqual(reconcile_ledger(), [])

    def test_concurrent_entries_and_sells_keep_ledger_consistent(self):
        results = []
        lock = threading.Lock()

        def seller(barrier):
            with self.app.app_context():
                try:
                    barrier.wait()
                    stock_service.sell_stock(product_ref="CONCUR-1", quantity=2)
                    with lock:
                        results.append("sold")
                except InsufficientStockError:
                    with lock:
                        results.append("insufficient")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        def receiver(barrier):
            with self.app.app_context():
                try:
                    barrier.wait()
                    stock_service.add_stock(product_ref="CONCUR-1", quantity=1)
                    with lock:
                        results.append("received")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        barrier = threading.Barrier(8)
        threads = [threading.Thread(target=seller, args=(barrier,)) for _ in range(4)]
        threads += [threading.Thread(target=receiver, args=(barrier,)) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertTrue(all(isinstance(r, str) for r in results), results)
        self.assertEqual(results.count("received"), 4)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            expected = self.STOCK + 4 - 2 * results.count("sold")
            self.assertEqual(product.current_stock, expected)
            self.assertGreaterEqual(product.current_stock, 0)
            self.assertEqual(reconcile_ledger(), [])


if __name__ == "__main__":
    unittest.main()
