"""
Pytest fixtures for Stockroom backend tests.

Provides a fresh in-memory database per test, seeded users, a product with
stock 10, and helpers for bearer-token headers.
"""

import pytest
from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Product
from stockroom.services.auth_service import create_user

PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test-secret-key',
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'MAIL_SUPPRESS_SEND': True,
    'MAIL_DEFAULT_SENDER': 'test@stockroom.local',
    'BCRYPT_ROUNDS': 4,
}


def make_app(**overrides):
    config = dict(TEST_CONFIG)
    config.update(overrides)
    return create_app(config)


@pytest.fixture(scope='function')
def app():
    """Create application with a fresh schema for each test."""
    app = make_app()

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
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin", "admin@example.com", PASSWORD, role="admin")


@pytest.fixture(scope='function')
def viewer_user(db_session):
    return create_user("viewer", "viewer@example.com", PASSWORD, role="viewer")


@pytest.fixture(scope='function')
def product(db_session):
    """Product with stock = 10."""
    p = Product(name="Widget", stock=10, price=9.99, category="Parts")
    db_session.add(p)
    db_session.commit()
    return p


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/login', json={
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
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def viewer_headers(client, viewer_user):
    return auth_headers(get_auth_token(client, viewer_user.username))
