"""
Pytest fixtures for RetailPOS backend tests.

Provides test database setup, tenant fixtures, users per role, catalog and
storefront data, and auth helpers for the test client.
"""

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import (
    Organization,
    Store,
    Unit,
    Product,
    OnlineStore,
    OnlineOrder,
    OnlineOrderItem,
)
from retailpos.permissions import UserRole
from retailpos.services.auth_service import create_user
from retailpos.services.permission_service import permission_service
from retailpos.services.user_store_access_service import assign_store


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'MAIL_SERVER': None,
        'EMAIL_ASYNC': False,
        'PERMISSION_CACHE_ENABLED': True,
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

        permission_service.clear_cache()
        permission_service.cache.reset_stats()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# TENANTS
# =============================================================================

@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def store_a(db_session, org_a):
    """Create Store A1 in Organization A."""
    store = Store(org_id=org_a.id, name="Store A1", code="A1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_a2(db_session, org_a):
    """Second store in Organization A."""
    store = Store(org_id=org_a.id, name="Store A2", code="A2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, org_b):
    """Create Store B1 in Organization B."""
    store = Store(org_id=org_b.id, name="Store B1", code="B1")
    db_session.add(store)
    db_session.commit()
    return store


# =============================================================================
# USERS
# =============================================================================

@pytest.fixture(scope='function')
def owner(db_session, org_a):
    return create_user(email="owner@acme.com", password=PASSWORD, org_id=org_a.id, role=UserRole.OWNER)


@pytest.fixture(scope='function')
def admin(db_session, org_a):
    return create_user(email="admin@acme.com", password=PASSWORD, org_id=org_a.id, role=UserRole.ADMIN)


@pytest.fixture(scope='function')
def store_manager(db_session, org_a, store_a):
    """Store manager assigned to Store A1 without overrides."""
    user = create_user(email="manager@acme.com", password=PASSWORD, org_id=org_a.id, role=UserRole.STORE_MANAGER)
    assign_store(user_id=user.id, store_id=store_a.id)
    return user


@pytest.fixture(scope='function')
def salesperson(db_session, org_a, store_a):
    """Salesperson assigned to Store A1 without overrides."""
    user = create_user(email="sales@acme.com", password=PASSWORD, org_id=org_a.id, role=UserRole.SALESPERSON)
    assign_store(user_id=user.id, store_id=store_a.id)
    return user


@pytest.fixture(scope='function')
def admin_b(db_session, org_b):
    return create_user(email="admin@beta.com", password=PASSWORD, org_id=org_b.id, role=UserRole.ADMIN)


# =============================================================================
# CATALOG
# =============================================================================

@pytest.fixture(scope='function')
def unit_piece(db_session, store_a):
    unit = Unit(store_id=store_a.id, name="Piece", conversion_factor=1.0)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def unit_box(db_session, store_a, unit_piece):
    """1 box = 12 pieces."""
    unit = Unit(store_id=store_a.id, name="Box", base_unit_id=unit_piece.id, conversion_factor=12.0)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def product_a(db_session, store_a):
    """Create Product in Store A1 with 10 on hand."""
    product = Product(
        store_id=store_a.id,
        sku="PROD-A-001",
        name="Product A",
        price_cents=10000,
        stock_quantity=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, store_a):
    """Second product in Store A1 with 2 on hand."""
    product = Product(
        store_id=store_a.id,
        sku="PROD-A-002",
        name="Product A2",
        price_cents=5000,
        stock_quantity=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, store_b):
    """Create Product in Store B1."""
    product = Product(
        store_id=store_b.id,
        sku="PROD-B-001",
        name="Product B",
        price_cents=2000,
        stock_quantity=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


# =============================================================================
# STOREFRONT
# =============================================================================

@pytest.fixture(scope='function')
def online_store(db_session, store_a):
    shop = OnlineStore(
        store_id=store_a.id,
        slug="acme-shop",
        name="Acme Online",
        contact_email="shop@acme.com",
        shipping_fee_cents=3000,
        bank_name="Acme Bank",
        bank_account_number="0123456789",
        bank_account_name="ACME CORP",
    )
    db_session.add(shop)
    db_session.commit()
    return shop


def make_order(db_session, online_store, lines, *, payment_method="cod", status="pending", number="ORD260101AAAAAA"):
    """
    Insert an order directly. lines: [(product, quantity), ...]
    """
    subtotal = sum(p.price_cents * q for p, q in lines)
    order = OnlineOrder(
        online_store_id=online_store.id,
        order_number=number,
        customer_email="buyer@example.com",
        customer_name="Buyer",
        customer_phone="0901234567",
        shipping_address={"address": "1 Main St", "city": "HCMC"},
        status=status,
        payment_status="pending",
        payment_method=payment_method,
        subtotal_cents=subtotal,
        shipping_fee_cents=online_store.shipping_fee_cents,
        total_cents=subtotal + online_store.shipping_fee_cents,
        stock_deducted=False,
    )
    for product, quantity in lines:
        order.items.append(OnlineOrderItem(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            total_price_cents=product.price_cents * quantity,
        ))
    db_session.add(order)
    db_session.commit()
    return order


@pytest.fixture(scope='function')
def pending_order(db_session, online_store, product_a):
    """Pending COD order for 3 x Product A."""
    return make_order(db_session, online_store, [(product_a, 3)])


# =============================================================================
# AUTH HELPERS
# =============================================================================

def get_auth_token(client, email: str, password: str = PASSWORD, org_id: int | None = None) -> str:
    """Helper to get auth token for a user."""
    payload = {'email': email, 'password': password}
    if org_id is not None:
        payload['org_id'] = org_id
    response = client.post('/api/auth/login', json=payload)
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str, store_id: int | None = None) -> dict:
    """Helper to create Authorization (+ X-Store-Id) headers."""
    headers = {'Authorization': f'Bearer {token}'}
    if store_id is not None:
        headers['X-Store-Id'] = str(store_id)
    return headers


def headers_for(client, user, store_id: int | None = None) -> dict:
    return auth_headers(get_auth_token(client, user.email, org_id=user.org_id), store_id)
