"""
Pytest fixtures for tradeledger backend tests.

Provides the test app (in-memory SQLite), a per-test clean database,
a test client and factories for items, customers and sale lines.
"""

import itertools

import pytest

from tradeledger import create_app
from tradeledger.extensions import db
from tradeledger.services import customer_ledger_service, inventory_service
from tradeledger.validation import SaleLineRequest


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database for each test, inside a pushed app context."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def make_item(db_session):
    """Create a committed inventory item. Prices are in cents."""
    def _make(
        name='Cement 50kg',
        quantity=10,
        sell_price_cents=10_000,
        limit_price_cents=None,
        **kwargs,
    ):
        return inventory_service.create_item(
            db_session,
            name=name,
            quantity=quantity,
            sell_price_cents=sell_price_cents,
            limit_price_cents=limit_price_cents,
            **kwargs,
        )
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Create a committed customer with a unique phone number."""
    phones = itertools.count(1)

    def _make(name='Jane Wanjiku', phone=None):
        phone = phone or f"07{next(phones):08d}"
        return customer_ledger_service.create_customer(db_session, name=name, phone=phone)
    return _make


@pytest.fixture(scope='function')
def line():
    """Build a SaleLineRequest for an item."""
    def _line(item, quantity, unit_price_cents):
        return SaleLineRequest(item_id=item.id, quantity=quantity, unit_price_cents=unit_price_cents)
    return _line
