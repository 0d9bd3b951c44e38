"""
Pytest fixtures for SteadyMonitor backend tests.

Provides a fresh in-memory database per test, seeded users for every role,
a small Uniform/Stationery catalog, learners, and test clients that carry
the `sid` cookie between requests.
"""

import pytest

from steadymonitor import create_app
from steadymonitor.extensions import db
from steadymonitor.models import User, Product, Customer
from steadymonitor.services.auth_service import hash_password


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'BCRYPT_ROUNDS': 4,
    'AUTH_COOKIE_SECURE': False,
    'LOGIN_MAX_FAILED_ATTEMPTS': 5,
    'LOGIN_LOCKOUT_MINUTES': 15,
}


@pytest.fixture(scope='function')
def app():
    """Create application with an empty in-memory database."""
    app = create_app(TEST_CONFIG)

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


def _add_user(db_session, username, role, department=None, password=PASSWORD, display_name=None, is_active=True):
    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        department=department,
        display_name=display_name or username.title(),
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def users(db_session):
    """
    One user per role.

    alice is the department_uniform user with password "correct"; everyone
    else uses PASSWORD.
    """
    return {
        "admin": _add_user(db_session, "admin", "admin", display_name="Administrator"),
        "manager": _add_user(db_session, "manager", "manager", "Uniform"),
        "cashier": _add_user(db_session, "cashier", "cashier", "Uniform"),
        "alice": _add_user(db_session, "alice", "department_uniform", "Uniform", password="correct", display_name="Alice"),
        "bob": _add_user(db_session, "bob", "department_stationery", "Stationery", display_name="Bob"),
    }


@pytest.fixture(scope='function')
def catalog(db_session):
    """
    P1: Uniform, price 500, stock 10
    P2: Uniform, price 250, stock 1
    P3: Stationery, price 100, stock 50
    P4: Uniform, inactive
    """
    products = [
        Product(id="P1", sku="UNI-001", name="School Shirt", department="Uniform",
                unit_price_cents=500, stock_quantity=10, reorder_level=2),
        Product(id="P2", sku="UNI-002", name="School Tie", department="Uniform",
                unit_price_cents=250, stock_quantity=1, reorder_level=0),
        Product(id="P3", sku="STA-001", name="Exercise Book", department="Stationery",
                unit_price_cents=100, stock_quantity=50, reorder_level=10),
        Product(id="P4", sku="UNI-OLD", name="Old Blazer", department="Uniform",
                unit_price_cents=900, stock_quantity=5, reorder_level=0, is_active=False),
    ]
    db_session.add_all(products)
    db_session.commit()
    return {p.id: p for p in products}


@pytest.fixture(scope='function')
def learners(db_session):
    customers = [
        Customer(id="C1", name="Amani Otieno", class_name="Grade 4", balance_cents=0),
        Customer(id="C2", name="Baraka Mwangi", class_name="Grade 4", balance_cents=300),
        Customer(id="C3", name="Chebet Kiptoo", class_name="Grade 6", balance_cents=0),
    ]
    db_session.add_all(customers)
    db_session.commit()
    return {c.id: c for c in customers}


@pytest.fixture(scope='function')
def login_as(app, users):
    """
    Return a factory that logs a user in on a fresh test client.

    Each client keeps its own cookie jar, so several users can be logged in
    at the same time within one test.
    """
    def _login(username: str, password: str | None = None):
        client = app.test_client()
        if password is None:
            password = "correct" if username == "alice" else PASSWORD
        resp = client.post('/api/auth/login', json={'username': username, 'password': password})
        assert resp.status_code == 200, resp.get_json()
        return client

    return _login


def get_session_cookie(client, app):
    """Current `sid` cookie value of a test client, or None."""
    cookie = client.get_cookie(app.config['AUTH_COOKIE_NAME'])
    return cookie.value if cookie else None


def stock_of(product_id: str) -> int:
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity


def balance_of(customer_id: str) -> int:
    db.session.expire_all()
    return db.session.get(Customer, customer_id).balance_cents
