"""
Pytest fixtures for the universal record store tests.

Provides an in-memory application, per-test clean tables, two tenant
organizations and small payload builders shared by the suites.
"""

import pytest

from unistore import create_app
from unistore.extensions import db
from unistore.models import Organization, new_id
from unistore.services import universal_service


ORG_SMART_CODE = "CORE.PLATFORM.ORG.TENANT.v1"
SERVICE_SMART_CODE = "CORE.SALON.SVC.ITEM.v1"
POS_SMART_CODE = "CORE.SALON.POS.SALE.v1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(id=new_id(), name="Org A - Acme Salon", code="ACME", smart_code=ORG_SMART_CODE)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(id=new_id(), name="Org B - Beta Furniture", code="BETA", smart_code=ORG_SMART_CODE)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def make_entity(db_session):
    """Factory: create an entity through the facade and return its dict."""
    def _make(org, entity_name="Haircut", entity_type="service", smart_code=SERVICE_SMART_CODE, **extra):
        payload = {"entity_type": entity_type, "entity_name": entity_name, "smart_code": smart_code}
        payload.update(extra)
        return universal_service.execute("entity", "upsert", org.id, payload, actor="tester")["entity"]
    return _make


@pytest.fixture(scope='function')
def pos_ticket():
    """Builder: POS ticket of service 100 + tax 5 settled by two payments (60 + 45)."""
    def _build(external_reference="ticket-1", **extra) -> dict:
        payload = {
            "transaction_type": "sale",
            "transaction_code": "T-100",
            "smart_code": POS_SMART_CODE,
            "external_reference": external_reference,
            "transaction_currency_code": "USD",
            "lines": [
                {"line_type": "SERVICE", "description": "Haircut", "quantity": 1, "unit_price": 100},
                {"line_type": "TAX", "line_amount": 5},
                {"line_type": "PAYMENT", "line_amount": 60, "line_data": {"method": "card"}},
                {"line_type": "PAYMENT", "line_amount": 45, "line_data": {"method": "cash"}},
            ],
        }
        payload.update(extra)
        return payload
    return _build


@pytest.fixture(scope='function')
def emit(db_session):
    """Emit a transaction through the facade and return the result dict."""
    def _emit(org, payload, actor="cashier-1"):
        return universal_service.execute("transaction", "emit", org.id, payload, actor=actor)
    return _emit
