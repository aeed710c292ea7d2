"""
Pytest fixtures for BranchPOS backend tests.

Provides test database setup, two-shop tenant fixtures, order collaborators
(products, customers, currency, payment methods) and a test client.
"""

from decimal import Decimal

import pytest

from branchpos import create_app
from branchpos.extensions import db
from branchpos.models import (
    Branch, Currency, Customer, PaymentMethod, Product, Shop, Store, User,
)
from branchpos.services.auth_service import hash_password
from branchpos.services.order_service import CreateOrderRequest, OrderLineRequest, PaymentRequest
from branchpos.services.scope_service import Principal


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ORDER_RETRY_BACKOFF_SECONDS': 0,
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
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def password_hash():
    """One low-cost bcrypt hash shared by every test user."""
    return hash_password(TEST_PASSWORD, rounds=4)


def _add(session, obj):
    session.add(obj)
    session.commit()
    return obj


# =============================================================================
# TENANTS: shop A (two branches) and shop B (one branch)
# =============================================================================

@pytest.fixture(scope='function')
def shop_a(db_session):
    return _add(db_session, Shop(name="Shop A - Corner Market", is_active=True))


@pytest.fixture(scope='function')
def shop_b(db_session):
    return _add(db_session, Shop(name="Shop B - Beta Goods", is_active=True))


@pytest.fixture(scope='function')
def branch_a1(db_session, shop_a):
    return _add(db_session, Branch(shop_id=shop_a.id, name="A1 Downtown"))


@pytest.fixture(scope='function')
def branch_a2(db_session, shop_a):
    return _add(db_session, Branch(shop_id=shop_a.id, name="A2 Uptown"))


@pytest.fixture(scope='function')
def branch_b1(db_session, shop_b):
    return _add(db_session, Branch(shop_id=shop_b.id, name="B1 Harbor"))


@pytest.fixture(scope='function')
def store_a1(db_session, branch_a1):
    return _add(db_session, Store(branch_id=branch_a1.id, name="A1 Counter", address="1 Main St", phone="555-0101"))


@pytest.fixture(scope='function')
def store_a2(db_session, branch_a2):
    return _add(db_session, Store(branch_id=branch_a2.id, name="A2 Counter"))


@pytest.fixture(scope='function')
def store_b1(db_session, branch_b1):
    return _add(db_session, Store(branch_id=branch_b1.id, name="B1 Counter"))


# =============================================================================
# STAFF
# =============================================================================

@pytest.fixture(scope='function')
def admin_a(db_session, shop_a, password_hash):
    return _add(db_session, User(shop_id=shop_a.id, username="admin_a", password_hash=password_hash, role="admin"))


@pytest.fixture(scope='function')
def owner_a(db_session, shop_a, password_hash):
    return _add(db_session, User(shop_id=shop_a.id, username="owner_a", password_hash=password_hash, role="shop_owner"))


@pytest.fixture(scope='function')
def cashier_a1(db_session, shop_a, branch_a1, password_hash):
    return _add(db_session, User(
        shop_id=shop_a.id, branch_id=branch_a1.id, username="cashier_a1",
        password_hash=password_hash, role="cashier",
    ))


@pytest.fixture(scope='function')
def cashier_a2(db_session, shop_a, branch_a2, password_hash):
    return _add(db_session, User(
        shop_id=shop_a.id, branch_id=branch_a2.id, username="cashier_a2",
        password_hash=password_hash, role="cashier",
    ))


@pytest.fixture(scope='function')
def admin_b(db_session, shop_b, password_hash):
    return _add(db_session, User(shop_id=shop_b.id, username="admin_b", password_hash=password_hash, role="admin"))


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role, shop_id=user.shop_id, branch_id=user.branch_id)


# =============================================================================
# ORDER COLLABORATORS
# =============================================================================

@pytest.fixture(scope='function')
def product_a(db_session, shop_a):
    """Price 10.00, stock 5."""
    return _add(db_session, Product(shop_id=shop_a.id, name="Cold Brew", price=Decimal("10.00"), stock=5))


@pytest.fixture(scope='function')
def product_a_big(db_session, shop_a):
    """Price 100.00, stock 5."""
    return _add(db_session, Product(shop_id=shop_a.id, name="Espresso Machine", price=Decimal("100.00"), stock=5))


@pytest.fixture(scope='function')
def product_b(db_session, shop_b):
    return _add(db_session, Product(shop_id=shop_b.id, name="Harbor Tea", price=Decimal("10.00"), stock=5))


@pytest.fixture(scope='function')
def customer_a(db_session, shop_a):
    """50 loyalty points, 20.00 in the e-wallet."""
    return _add(db_session, Customer(
        shop_id=shop_a.id, name="Dana Reyes", loyalty_points=50, ewallet_balance=Decimal("20.00"),
    ))


@pytest.fixture(scope='function')
def customer_b(db_session, shop_b):
    return _add(db_session, Customer(shop_id=shop_b.id, name="Lee Park", loyalty_points=10, ewallet_balance=Decimal("5.00")))


@pytest.fixture(scope='function')
def currency(db_session):
    return _add(db_session, Currency(code="USD", exchange_rate=None))


@pytest.fixture(scope='function')
def cash(db_session):
    return _add(db_session, PaymentMethod(name="Cash", is_active=True))


def order_request(
    store,
    currency,
    lines,
    *,
    payments=(),
    status="completed",
    **kwargs,
) -> CreateOrderRequest:
    """
    Build a CreateOrderRequest.

    lines: iterable of (product, quantity) or (product, quantity, unit_price)
    payments: iterable of (payment_method, amount)
    """
    items = []
    for line in lines:
        product, quantity = line[0], line[1]
        unit_price = Decimal(str(line[2])) if len(line) > 2 else Decimal(product.price)
        items.append(OrderLineRequest(product_id=product.id, quantity=quantity, unit_price=unit_price))

    return CreateOrderRequest(
        items=tuple(items),
        store_id=store.id,
        currency_id=currency.id,
        payments=tuple(PaymentRequest(method.id, Decimal(str(amount))) for method, amount in payments),
        status=status,
        **kwargs,
    )


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
