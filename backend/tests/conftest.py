"""
Pytest fixtures for ModaLedger backend tests.

Each test gets its own application on a temporary SQLite file (a file
rather than :memory: so worker threads in the import tests share it), a
pushed app context, a test client and small data factories.
"""

import pytest

from modaledger import create_app
from modaledger.extensions import db
from modaledger.models import Customer, Product


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    db_path = tmp_path / "ledger.sqlite3"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_IMPORT_CONCURRENCY': 5,
        'LEDGER_IMPORT_ITEM_TIMEOUT': 5.0,
        'LEDGER_LIVE_HEARTBEAT_SECONDS': 0.05,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Session bound to the test's app context."""
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku=..., name=..., price_cents=..., stock=...)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "sku": f"BS-VE-PR-{counter['n']:02d}-m",
            "name": f"Vestido {counter['n']}",
            "category": "Vestidos",
            "size": "M",
            "color": "Preto",
            "price_cents": 15000,
            "cost_cents": 8000,
            "stock": 10,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(name="Ana")."""

    def _make(name="Ana", phone="11999990000", email=None):
        customer = Customer(name=name, phone=phone, email=email)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make
