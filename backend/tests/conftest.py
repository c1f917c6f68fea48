"""
Pytest fixtures for the reconciliation engine tests.

Provides the in-memory database, a pinned clock, station factories, actors
and the test client.
"""

from datetime import datetime

import pytest

from fuelrecon import create_app
from fuelrecon.extensions import db
from fuelrecon.services import station_service
from fuelrecon.services.lock_service import Actor, ROLE_ADMIN, ROLE_STAFF
from fuelrecon.time_utils import FixedClock


START = datetime(2026, 3, 1, 6, 0, 0)


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
def clock(app):
    """Clock pinned to START; tests move it with clock.advance(hours=...)."""
    previous = app.extensions["clock"]
    fixed = FixedClock(START)
    app.extensions["clock"] = fixed
    yield fixed
    app.extensions["clock"] = previous


@pytest.fixture(scope='function')
def db_session(app, clock):
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
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def admin():
    return Actor(actor_id="admin-1", name="Admin", role=ROLE_ADMIN)


@pytest.fixture
def staff():
    return Actor(actor_id="staff-1", name="Staff", role=ROLE_STAFF)


@pytest.fixture
def station(db_session):
    """Liquid-fuel station, one shift per day, four nozzles."""
    return station_service.create_station(code="ST-01", name="Highway 12", station_type="FULL")


@pytest.fixture
def shift_station(db_session):
    """Liquid-fuel station worked in up to three shifts."""
    return station_service.create_station(code="ST-02", name="Market Road", station_type="FULL", max_shifts=3)


@pytest.fixture
def gas_station(db_session):
    """LPG station with three 98-liter tanks."""
    return station_service.create_station(code="GAS-01", name="Gas Depot", station_type="GAS")


def actor_headers(actor: Actor) -> dict:
    """Identity headers as set by the gateway."""
    headers = {
        'X-Actor-Id': actor.actor_id,
        'X-Actor-Role': actor.role,
    }
    if actor.name:
        headers['X-Actor-Name'] = actor.name
    if actor.station_id:
        headers['X-Station-Id'] = str(actor.station_id)
    return headers


@pytest.fixture
def admin_headers(admin):
    return actor_headers(admin)


@pytest.fixture
def staff_headers(staff):
    return actor_headers(staff)


@pytest.fixture
def headers_for():
    return actor_headers
