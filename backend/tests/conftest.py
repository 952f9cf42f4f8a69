"""
Pytest fixtures for tripflow backend tests.

Provides test database setup, an organization with a scheduled trip, and a
test client.
"""

from datetime import datetime

import pytest
from tripflow import create_app
from tripflow.extensions import db
from tripflow.models import Organization
from tripflow.services import memo_service, order_service


ACTOR = "user-dispatcher"
ACTOR_ROLE = "MANAGER"
CLIENT_ID = 501

# 1000 bricks at 8.00 plus 400.00 GST
BRICK_ITEMS = [{"product_id": 1, "product_name": "Bricks", "quantity": 1000, "unit_price_cents": 800}]
TRIP_TOTAL_CENTS = 840000


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # Small batches so settlement and reversal cross chunk boundaries
        'LEDGER_BATCH_SIZE': 2,
        'DB_RETRY_ATTEMPTS': 1,
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
        app.extensions["trip_notifiers"].clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.extensions["trip_notifiers"].clear()


@pytest.fixture(scope='function')
def org(db_session):
    """Create the tenant organization."""
    org = Organization(name="Acme Logistics", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    """Create a second, unrelated organization."""
    org = Organization(name="Beta Transport", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def order(db_session, org):
    """Pay-later order with room for three trips."""
    return order_service.create_order(
        organization_id=org.id,
        client_name="Ravi Traders",
        client_id=CLIENT_ID,
        client_phone="9000000001",
        payment_type=order_service.PAYMENT_PAY_LATER,
        items=BRICK_ITEMS,
        estimated_trips=3,
        created_by=ACTOR,
    )


@pytest.fixture(scope='function')
def trip(db_session, order):
    """Trip scheduled on 2024-05-10 (FY2425), morning slot."""
    return order_service.schedule_trip(
        order.id,
        scheduled_date=datetime(2024, 5, 10, 9, 0),
        vehicle_id=11,
        vehicle_number="KA-01-1234",
        slot=1,
        slot_name="Morning",
        driver_id=21,
        driver_name="Suresh",
        driver_phone="9000000021",
        gst_cents=40000,
        created_by=ACTOR,
    )


@pytest.fixture(scope='function')
def cod_trip(db_session, org):
    """Pay-on-delivery trip on the same day as trip, afternoon slot."""
    cod_order = order_service.create_order(
        organization_id=org.id,
        client_name="Meena Constructions",
        client_id=502,
        payment_type=order_service.PAYMENT_PAY_ON_DELIVERY,
        items=BRICK_ITEMS,
        estimated_trips=1,
        created_by=ACTOR,
    )
    return order_service.schedule_trip(
        cod_order.id,
        scheduled_date=datetime(2024, 5, 10, 14, 0),
        vehicle_id=11,
        vehicle_number="KA-01-1234",
        slot=2,
        slot_name="Afternoon",
        gst_cents=40000,
        created_by=ACTOR,
    )


@pytest.fixture(scope='function')
def memo(db_session, trip):
    """Dispatch memo generated for trip."""
    result = memo_service.generate_dispatch_memo(trip.id, ACTOR)
    return memo_service.get_memo(result["memo_id"])


def actor_headers(actor_id: str = ACTOR, role: str | None = ACTOR_ROLE) -> dict:
    """Helper to create actor headers."""
    headers = {'X-Actor-Id': actor_id}
    if role:
        headers['X-Actor-Role'] = role
    return headers
