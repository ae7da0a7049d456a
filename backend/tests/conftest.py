"""
Pytest fixtures for creditdesk backend tests.

Provides the test app on an in-memory database, a per-test clean schema,
catalog and technical service fixtures, and operator headers.
"""

import pytest

from creditdesk import create_app
from creditdesk.extensions import db
from creditdesk.models import Category, Product, TechnicalService
from creditdesk.services import account_service
from creditdesk.services.system_log_service import writer as system_log_writer

OPERATOR = "tester"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_OPERATOR': None,
        'LEDGER_RETRY_BACKOFF': 0,
    })

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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        system_log_writer.enabled = True
        system_log_writer.max_buffer = app.config["SYSTEM_LOG_BUFFER_SIZE"]
        system_log_writer._buffer.clear()
        system_log_writer.dead_letter_count = 0
        system_log_writer.failed_flush_count = 0

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def category(db_session):
    """Category with a 25% profit margin."""
    cat = Category(name="Spare Parts", slug="spare-parts", profit_margin_bps=2500)
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def plain_category(db_session):
    """Category without a margin (credit sales fall back to sale/list price)."""
    cat = Category(name="Accessories", slug="accessories", profit_margin_bps=0)
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def product(db_session, plain_category):
    """List-priced product: 200 cents, 50 in stock."""
    prod = Product(
        category_id=plain_category.id,
        sku="ACC-001",
        name="Fuse Kit",
        price_cents=200,
        stock_quantity=50,
    )
    db_session.add(prod)
    db_session.commit()
    return prod


@pytest.fixture(scope='function')
def second_product(db_session, plain_category):
    """List-priced product: 50 cents, 3 in stock."""
    prod = Product(
        category_id=plain_category.id,
        sku="ACC-002",
        name="Cable Tie",
        price_cents=50,
        stock_quantity=3,
    )
    db_session.add(prod)
    db_session.commit()
    return prod


@pytest.fixture(scope='function')
def margin_product(db_session, category):
    """Cost 4000 in a 25% margin category: credit price 5000."""
    prod = Product(
        category_id=category.id,
        sku="SP-001",
        name="Compressor Relay",
        cost_price_cents=4000,
        price_cents=6500,
        sale_price_cents=6000,
        stock_quantity=10,
    )
    db_session.add(prod)
    db_session.commit()
    return prod


@pytest.fixture(scope='function')
def account(db_session) -> TechnicalService:
    """Active technical service, balance 0, limit 1000 cents."""
    return account_service.create_account(
        {"name": "Yilmaz Technical Service", "credit_limit_cents": 1000},
        created_by=OPERATOR,
    )


def operator_headers(operator: str = OPERATOR) -> dict:
    """Helper to create X-Operator headers."""
    return {'X-Operator': operator}


@pytest.fixture(scope='function')
def headers():
    return operator_headers()
