"""
Concurrency tests on a file-backed SQLite database.

Each worker runs in its own app context (own session and connection), so
writers genuinely contend for the database lock.
"""

import os
import tempfile
import threading
from decimal import Decimal

import pytest

from tillbook import create_app
from tillbook.config import TestConfig
from tillbook.errors import DomainError, ValidationError
from tillbook.extensions import db
from tillbook.models import Customer, Document, Product
from tillbook.services import lifecycle_service, reconciliation_service


@pytest.fixture()
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "check_same_thread": False}}
        ALLOW_OVERSELL_INVOICE = False

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


def _seed(app, stock):
    with app.app_context():
        customer = Customer(name="Race Customer", email="race@example.com")
        product = Product(name="Last Unit", price=Decimal("10.00"), stock=stock)
        db.session.add_all([customer, product])
        db.session.commit()
        return customer.id, product.id


def _run_workers(app, target, count):
    results = []
    errors = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def worker(index):
        with app.app_context():
            try:
                barrier.wait()
                value = target(index)
                with lock:
                    results.append(value)
            except DomainError as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def _stock(app, product_id):
    with app.app_context():
        value = db.session.get(Product, product_id).stock
        db.session.remove()
        return value


def test_two_invoices_race_for_last_unit(file_app):
    customer_id, product_id = _seed(file_app, stock=1)

    def create(_):
        doc = lifecycle_service.create_document(
            customer_id=customer_id,
            items=[{"product_id": product_id, "quantity": 1, "unit_price": None}],
        )
        return doc.id

    created, errors = _run_workers(file_app, create, 2)

    assert len(created) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], ValidationError)
    assert _stock(file_app, product_id) == 0


def test_conversions_never_drive_stock_negative(file_app):
    customer_id, product_id = _seed(file_app, stock=3)
    with file_app.app_context():
        quote_ids = [
            lifecycle_service.create_document(
                customer_id=customer_id,
                items=[{"product_id": product_id, "quantity": 1, "unit_price": None}],
                doc_type="quote",
            ).id
            for _ in range(6)
        ]
        db.session.remove()

    converted, errors = _run_workers(
        file_app,
        lambda i: lifecycle_service.convert_quote(quote_ids[i]).id,
        len(quote_ids),
    )

    assert len(converted) == 3
    assert len(errors) == 3
    assert _stock(file_app, product_id) == 0

    with file_app.app_context():
        invoices = db.session.query(Document).filter_by(type="invoice").count()
        db.session.remove()
    assert invoices == 3


def test_only_one_shift_opens(file_app):
    opened, errors = _run_workers(
        file_app,
        lambda _: reconciliation_service.start_shift(Decimal("100.00")).id,
        4,
    )
    assert len(opened) == 1
    assert len(errors) == 3
