"""
Pytest fixtures for shopkeep backend tests.

Provides an in-memory database, role/user/product fixtures, and login helpers.
"""

import pytest
from shopkeep import create_app
from shopkeep.extensions import db
from shopkeep.models import Role, User
from shopkeep.services.auth_service import hash_password
from shopkeep.services import products_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'ACCESS_TOKEN_SECRET': 'test-access-secret',
        'REFRESH_TOKEN_SECRET': 'test-refresh-secret',
        'ALLOW_SUPERUSER_BOOTSTRAP': True,
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
def admin_role(db_session):
    role = Role(name="SuperAdmin")
    db_session.add(role)
    db_session.commit()
    return role


@pytest.fixture(scope='function')
def cashier_role(db_session):
    role = Role(name="Cashier")
    db_session.add(role)
    db_session.commit()
    return role


def make_user(db_session, role, email, name="Test User", password=TEST_PASSWORD) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role_id=role.id,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, admin_role):
    """SuperAdmin account (admin@shop.test)."""
    return make_user(db_session, admin_role, "admin@shop.test", name="Admin")


@pytest.fixture(scope='function')
def cashier_user(db_session, cashier_role):
    """Non-admin account (cashier@shop.test)."""
    return make_user(db_session, cashier_role, "cashier@shop.test", name="Cashier")


def make_product(sku="SKU-001", name="Cola 500ml", price_cents=150, quantity=0, **extra) -> dict:
    """Create a product through the service so initial stock is booked as a movement."""
    patch = {"sku": sku, "name": name, "price_cents": price_cents, "quantity": quantity}
    patch.update(extra)
    return products_service.create_product(patch=patch)


@pytest.fixture(scope='function')
def product(db_session):
    """Product with 20 units in stock."""
    return make_product(quantity=20, cost_price_cents=100)


def login(client, email: str, password: str = TEST_PASSWORD):
    """POST /api/auth/login; the test client keeps the auth cookies."""
    return client.post('/api/auth/login', json={'email': email, 'password': password})


def get_access_token(client, email: str, password: str = TEST_PASSWORD) -> str | None:
    """Helper to get an access token for a user."""
    response = login(client, email, password)
    if response.status_code == 200:
        cookie = client.get_cookie('access_token')
        return cookie.value if cookie else None
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_client(client, admin_user):
    """Test client logged in as the SuperAdmin."""
    response = login(client, admin_user.email)
    assert response.status_code == 200
    return client


@pytest.fixture(scope='function')
def cashier_client(client, cashier_user):
    """Test client logged in as a cashier."""
    response = login(client, cashier_user.email)
    assert response.status_code == 200
    return client
