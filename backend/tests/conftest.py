"""
Pytest fixtures for fieldstock backend tests.

Provides an in-memory database, reference data for one organization, and
helpers that put stock on the ledger through the receipt workflow.
"""

import pytest

from fieldstock import create_app
from fieldstock.extensions import db
from fieldstock.models import Material, StockArea, User
from fieldstock.services import receipt_service
from fieldstock.services.tenant_service import OrgContext


ORG_ID = 1


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'WORKFLOW_RETRY_BACKOFF': 0,
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
def technician(db_session):
    user = User(org_id=ORG_ID, name="Tech One", email="tech1@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_technician(db_session):
    user = User(org_id=ORG_ID, name="Tech Two", email="tech2@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def ctx(db_session, technician):
    """Caller context for organization 1, acting as the technician."""
    return OrgContext(org_id=ORG_ID, user_id=technician.id)


@pytest.fixture(scope='function')
def main_store(db_session):
    area = StockArea(org_id=ORG_ID, name="Main Store", location_code="MS-01")
    db_session.add(area)
    db_session.commit()
    return area


@pytest.fixture(scope='function')
def branch_store(db_session, main_store):
    area = StockArea(org_id=ORG_ID, name="Branch Store", location_code="BR-01")
    db_session.add(area)
    db_session.commit()
    return area


@pytest.fixture(scope='function')
def cable(db_session):
    """Bulk material (no serial numbers)."""
    material = Material(org_id=ORG_ID, product_code="CBL-CAT6", name="CAT6 cable", material_type="CABLE", uom="METER")
    db_session.add(material)
    db_session.commit()
    return material


@pytest.fixture(scope='function')
def router(db_session):
    """Serialized material."""
    material = Material(org_id=ORG_ID, product_code="RTR-AX", name="AX router", material_type="CPE")
    db_session.add(material)
    db_session.commit()
    return material


def receive(ctx, stock_area, material, quantity=None, serials=None):
    """Complete a receipt of `quantity` bulk units or one unit per serial; returns unit ids."""
    if serials:
        items = [{"material_id": material.id, "serial_number": serial} for serial in serials]
    else:
        items = [{"material_id": material.id, "quantity": quantity}]
    result = receipt_service.submit_receipt(
        ctx,
        {"stock_area_id": stock_area.id, "items": items},
        complete=True,
    )
    return result["unit_ids"]


def headers(ctx):
    """Identity headers the upstream collaborator forwards."""
    return {"X-User-Id": str(ctx.user_id), "X-Org-Id": str(ctx.org_id)}
