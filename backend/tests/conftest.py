"""
Pytest fixtures for brewpos backend tests.

Provides test database setup, catalog fixtures, actor headers and test client.
"""

from decimal import Decimal

import pytest
from brewpos import create_app
from brewpos.extensions import db
from brewpos.models import Product, ProductVariant
from brewpos.services import shift_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TAX_RATE': Decimal("0.12"),
        'DEFAULT_DELIVERY_FEE': Decimal("50.00"),
        'SHIFT_DISCREPANCY_THRESHOLD': Decimal("100.00"),
        'DEFAULT_LOCATION': 'main',
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
        db.session.remove()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def americano(db_session):
    """Plain product, 100.00, no variants."""
    product = Product(name="Americano", category="Coffee", price=Decimal("100.00"), is_available=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def latte(db_session):
    """Product with a Size group (Regular +0, Large +25) and an inactive option."""
    product = Product(name="Cafe Latte", category="Coffee", price=Decimal("120.00"), is_available=True)
    product.variants.append(ProductVariant(group_name="Size", name="Regular", price_delta=Decimal("0.00")))
    product.variants.append(ProductVariant(group_name="Size", name="Large", price_delta=Decimal("25.00")))
    product.variants.append(ProductVariant(group_name="Milk", name="Soy", price_delta=Decimal("30.00"), is_active=False))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def sold_out(db_session):
    product = Product(name="Seasonal Cold Brew", category="Coffee", price=Decimal("150.00"), is_available=False)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def croissant(db_session):
    """Counted product: 3 on hand, low at 2."""
    product = Product(
        name="Butter Croissant",
        category="Pastry",
        price=Decimal("85.00"),
        is_available=True,
        track_stock=True,
        stock_quantity=3,
        low_stock_threshold=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def active_shift(db_session):
    """Shift opened at the default location with a 1000.00 float."""
    return shift_service.open_shift(Decimal("1000.00"), actor="cashier-1")


def variant(product, name: str):
    """Helper to find a product's variant by option name."""
    return next(v for v in product.variants if v.name == name)


def actor_headers(actor_id: str, role: str = "customer") -> dict:
    """Helper to create actor headers as forwarded by the gateway."""
    return {'X-Actor-Id': actor_id, 'X-Actor-Role': role}


@pytest.fixture
def staff_headers():
    return actor_headers("cashier-1", "staff")


@pytest.fixture
def customer_headers():
    return actor_headers("customer-1", "customer")
