"""
Pytest fixtures for the voucher POS backend tests.

Provides an in-memory application, a per-test table wipe, catalog and
user fixtures, and login helpers for the Flask test client.
"""

import pytest

from voucherpos import create_app
from voucherpos.extensions import db
from voucherpos.models import Product, User
from voucherpos.models.auth import ROLE_ADMIN, ROLE_STAFF
from voucherpos.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'DB_RETRY_BACKOFF': 0.0,
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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _create_product(session, name, *, cost, sale, quantity, barcode=None, category="General") -> Product:
    product = Product(
        name=name,
        barcode=barcode,
        cost_price=cost,
        sale_price=sale,
        quantity=quantity,
        category=category,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, cost=..., sale=..., quantity=..., barcode=None, category="General")."""
    def _make(name, **kwargs):
        return _create_product(db_session, name, **kwargs)
    return _make


@pytest.fixture(scope='function')
def product_p(db_session):
    """P: cost 100, sale 150, 10 on hand."""
    return _create_product(db_session, "Product P", cost=100, sale=150, quantity=10, barcode="1001")


@pytest.fixture(scope='function')
def product_q(db_session):
    """Q: cost 200, sale 300, 5 on hand."""
    return _create_product(db_session, "Product Q", cost=200, sale=300, quantity=5, barcode="1002")


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(username="admin", password_hash=hash_password(TEST_PASSWORD), role=ROLE_ADMIN, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff_user(db_session):
    user = User(username="staff", password_hash=hash_password(TEST_PASSWORD), role=ROLE_STAFF, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "staff"))
