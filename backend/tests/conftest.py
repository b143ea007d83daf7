"""
Pytest fixtures for back-office backend tests.

Provides an in-memory database, the Flask test client and small factories
for products, sellers and customers.
"""

import itertools

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Product, Seller, Customer, CustomerProduct


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EXPOSE_INTERNAL_ERRORS': True,
        'BILL_NUMBER_PREFIX': 'EM',
        'BILL_NUMBER_PAD': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
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
def make_product(db_session):
    """Factory: product with stock set directly (no movement row)."""
    counter = itertools.count(1)

    def _make(*, stock=10, price_cents=10000, name=None, model=None, category="Watches", **fields):
        n = next(counter)
        product = Product(
            name=name or f"Product {n}",
            model=model or f"MDL-{n}",
            category=category,
            original_price_cents=price_cents,
            stock=stock,
            low_stock_alert=fields.pop("low_stock_alert", 2),
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_seller(db_session):
    counter = itertools.count(1)

    def _make(*, rate_cents=500, basic_salary_cents=0, name=None, **fields):
        seller = Seller(
            name=name or f"Seller {next(counter)}",
            commission_rate_cents=rate_cents,
            basic_salary_cents=basic_salary_cents,
            **fields,
        )
        db_session.add(seller)
        db_session.commit()
        return seller

    return _make


@pytest.fixture(scope='function')
def make_legacy_customer(db_session):
    """
    Factory: customer row written directly, bypassing stock and commission.

    Used to model data that predates the current write path.
    """
    def _make(*, name="Legacy Customer", type="online", seller=None, price_cents=None,
              lines=None, legacy_product=None, product_text=None):
        customer = Customer(
            name=name,
            type=type,
            seller_id=seller.id if seller else None,
            price_cents=price_cents,
            legacy_product_id=legacy_product.id if legacy_product else None,
            product=product_text,
        )
        for product, quantity in (lines or []):
            customer.products.append(CustomerProduct(
                product_id=product.id,
                name=product.name,
                model=product.model,
                quantity=quantity,
            ))
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current stock for a product id, read from the database."""
    def _stock(product_id: int) -> int:
        product = db_session.get(Product, product_id)
        db_session.refresh(product)
        return product.stock

    return _stock


@pytest.fixture(scope='function')
def seller_of(db_session):
    def _seller(seller_id: int) -> Seller:
        seller = db_session.get(Seller, seller_id)
        db_session.refresh(seller)
        return seller

    return _seller
