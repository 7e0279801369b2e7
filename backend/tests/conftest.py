"""
Pytest fixtures for YUANDI backend tests.

Provides an app on in-memory SQLite per test, users with bearer tokens for
each role, and a product factory.
"""

from datetime import date

import pytest

from yuandi import create_app
from yuandi.extensions import db
from yuandi.permissions import ROLE_ADMIN, ROLE_ORDER_MANAGER, ROLE_SHIP_MANAGER
from yuandi.services import session_service, product_service, exchange_rate_service


TEST_CNY_RATE = "190"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'TX_RETRY_BACKOFF_SECONDS': 0.001,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def users(app):
    """One user per role. Returns {role: (user, token)}."""
    created = {}
    for username, role in (
        ("admin", ROLE_ADMIN),
        ("orders", ROLE_ORDER_MANAGER),
        ("shipping", ROLE_SHIP_MANAGER),
    ):
        created[role] = session_service.create_user(username=username, role=role)
    return created


@pytest.fixture(scope='function')
def admin_headers(users):
    return auth_headers(users[ROLE_ADMIN][1])


@pytest.fixture(scope='function')
def order_manager_headers(users):
    return auth_headers(users[ROLE_ORDER_MANAGER][1])


@pytest.fixture(scope='function')
def ship_manager_headers(users):
    return auth_headers(users[ROLE_SHIP_MANAGER][1])


@pytest.fixture(scope='function')
def cny_rate(app):
    """A CNY rate dated far enough back to cover every transaction date."""
    return exchange_rate_service.set_rate(currency="CNY", rate=TEST_CNY_RATE, rate_date=date(2000, 1, 1))


@pytest.fixture(scope='function')
def make_product(app):
    """Factory: make_product(stock=10, **fields) -> Product."""
    def _make(stock: int = 0, **fields):
        patch = {
            "category": "Bag",
            "name": "Test Bag",
            "model": "Classic",
            "color": "Black",
            "brand": "Yuandi",
            "sale_price_krw": 50000,
        }
        patch.update(fields)
        return product_service.create_product(patch=patch, initial_stock=stock or None)
    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
