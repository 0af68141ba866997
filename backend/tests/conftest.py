"""
Pytest fixtures for tillbook backend tests.

Provides the app on an in-memory database, a clean schema per test,
seeded outlet/settings, staff with bearer tokens and catalog factories.
"""

from decimal import Decimal

import pytest

from tillbook import create_app
from tillbook.config import TestConfig
from tillbook.extensions import db
from tillbook.models import Customer, Outlet, Product, StoreSettings
from tillbook.services import auth_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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

        # Per-test config changes must not leak
        saved = dict(app.config)
        yield db.session

        db.session.rollback()
        app.config.clear()
        app.config.update(saved)


@pytest.fixture(scope='function')
def outlet(db_session):
    """Active outlet charging 8% GST."""
    outlet = Outlet(name="Main Outlet", currency="MVR", gst_rate=Decimal("8.00"))
    db_session.add(outlet)
    db_session.flush()
    db_session.add(StoreSettings(id=1, current_outlet_id=outlet.id, gst_rate=Decimal("0"), currency="MVR"))
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Aminath Shareef", email="aminath@example.com", phone="7771234")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(stock=5, price="10.00", id=None, track_inventory=True)."""
    def _make(stock=5, price="10.00", name=None, **kwargs):
        product = Product(
            name=name or f"Product {stock}-{price}",
            price=Decimal(price),
            stock=stock,
            **kwargs,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read stock straight from the database, bypassing the identity map."""
    def _read(product_id: int) -> int:
        return db_session.execute(
            db.select(Product.stock).where(Product.id == product_id)
        ).scalar_one()
    return _read


def _staff_headers(username: str, role: str) -> dict:
    staff = auth_service.create_staff(username, "Password123!", role=role)
    return auth_headers(auth_service.issue_token(staff))


@pytest.fixture(scope='function')
def admin_headers(db_session):
    return _staff_headers("admin", "admin")


@pytest.fixture(scope='function')
def manager_headers(db_session):
    return _staff_headers("manager", "manager")


@pytest.fixture(scope='function')
def cashier_headers(db_session):
    return _staff_headers("cashier", "cashier")


@pytest.fixture(scope='function')
def accounts_headers(db_session):
    return _staff_headers("accounts", "accounts")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
