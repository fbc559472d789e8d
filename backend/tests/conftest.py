"""
Pytest fixtures for RepairDesk backend tests.

Provides an in-memory database, a test client, actors for each role, a
default policy snapshot, and a recording event sink.
"""

import pytest

from repairdesk import create_app
from repairdesk.context import Actor, Policy
from repairdesk.extensions import db
from repairdesk.models import Role, TicketStatus
from repairdesk.services import customer_service, inventory_service, ticket_service


class RecordingEventSink:
    """Collects emitted events so tests can assert on them."""

    def __init__(self):
        self.events = []

    def emit(self, event_type, payload):
        self.events.append((event_type, payload))

    def types(self):
        return [event_type for event_type, _ in self.events]

    def clear(self):
        self.events.clear()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })
    app.extensions['event_sink'] = RecordingEventSink()

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
        app.extensions['event_sink'].clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def events(app):
    return app.extensions['event_sink']


# =============================================================================
# ACTORS AND POLICY
# =============================================================================

@pytest.fixture
def admin():
    return Actor(id=1, role=Role.ADMIN)


@pytest.fixture
def staff():
    return Actor(id=2, role=Role.STAFF)


@pytest.fixture
def technician():
    return Actor(id=3, role=Role.TECHNICIAN)


@pytest.fixture
def policy():
    return Policy()


def actor_headers(actor_id: int, role: str) -> dict:
    """Helper to create gateway identity headers."""
    return {'X-Actor-Id': str(actor_id), 'X-Actor-Role': role}


@pytest.fixture
def admin_headers():
    return actor_headers(1, 'ADMIN')


@pytest.fixture
def staff_headers():
    return actor_headers(2, 'STAFF')


@pytest.fixture
def technician_headers():
    return actor_headers(3, 'TECHNICIAN')


# =============================================================================
# DOMAIN RECORDS
# =============================================================================

@pytest.fixture
def customer(db_session, admin):
    return customer_service.create_customer(
        {'name': 'Dana Customer', 'phone': '555-0100', 'email': 'dana@example.com'},
        admin,
    )


@pytest.fixture
def ticket(db_session, customer, admin):
    """A RECEIVED ticket with an estimate of 10000 cents."""
    return ticket_service.create_ticket(
        {
            'customer_id': customer.id,
            'device_type': 'Phone',
            'device_brand': 'Acme',
            'device_model': 'X1',
            'issue_description': 'Cracked screen',
            'estimated_price_cents': 10000,
            'warranty_days': 30,
        },
        admin,
    )


@pytest.fixture
def part(db_session, admin):
    """A part with 5 units on hand."""
    return inventory_service.create_part(
        sku='SCR-X1',
        name='Screen assembly X1',
        actor=admin,
        quantity=5,
        reorder_level=1,
        unit_price_cents=2500,
    )


def advance(ticket_id: int, actor, *statuses):
    """Walk a ticket through the given statuses in order."""
    result = None
    for status in statuses:
        result = ticket_service.change_status(ticket_id, status, actor)
    return result


@pytest.fixture
def repaired_ticket(ticket, admin):
    advance(ticket.id, admin, TicketStatus.IN_PROGRESS, TicketStatus.REPAIRED)
    return ticket_service.get_ticket(ticket.id)
