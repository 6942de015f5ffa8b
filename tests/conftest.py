"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from tribu.core.database import configure_sqlite_connection, get_session
from tribu.main import app
from tribu.models import Event, EventCategory, Group, PushSubscription
from tribu.models.attendee import name_key
from tribu.push.client import DeliveryResult, get_push_gateway


class FakeGateway:
    """Push gateway that records deliveries instead of sending them.

    ``results`` maps an endpoint to the DeliveryResult it should report;
    unknown endpoints succeed.
    """

    def __init__(self):
        self.results: dict[str, DeliveryResult] = {}
        self.sent = []

    def send(self, subscription, payload):
        self.sent.append((subscription.endpoint, payload))
        return self.results.get(subscription.endpoint, DeliveryResult.SUCCESS)

    @property
    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.sent]


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    sa_event.listen(
        engine, "connect", lambda dbapi_connection, record: configure_sqlite_connection(dbapi_connection)
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """Create a file-backed SQLite database, for tests that need real concurrent connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tribu.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    sa_event.listen(
        engine, "connect", lambda dbapi_connection, record: configure_sqlite_connection(dbapi_connection)
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="gateway")
def gateway_fixture() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(name="client")
def client_fixture(session: Session, gateway: FakeGateway):
    """Create a test client with the test database session and a fake push gateway."""

    def get_session_override():
        return session

    def get_push_gateway_override():
        return gateway

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_push_gateway] = get_push_gateway_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def create_event(session: Session, **overrides) -> Event:
    """Insert an event starting in two days, with ``overrides`` applied."""
    fields = {
        "title": "Sortie au parc",
        "description": "Pique-nique et jeux",
        "location": "Parc de la Tête d'Or, Lyon",
        "organizer": "Alice",
        "date": datetime.now(UTC) + timedelta(days=2),
    }
    fields.update(overrides)
    event = Event(**fields)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@pytest.fixture(name="make_event")
def make_event_fixture(session: Session):
    """Factory inserting upcoming events."""

    def make(**overrides) -> Event:
        return create_event(session, **overrides)

    return make


@pytest.fixture(name="sample_event")
def sample_event_fixture(session: Session) -> Event:
    """Create an upcoming event with room for two attendees."""
    return create_event(session, max_participants=2)


@pytest.fixture(name="open_event")
def open_event_fixture(session: Session) -> Event:
    """Create an upcoming event with no capacity limit."""
    return create_event(session, title="Atelier poterie", category=EventCategory.ATELIER)


@pytest.fixture(name="past_event")
def past_event_fixture(session: Session) -> Event:
    """Create an event that started yesterday."""
    return create_event(session, title="Brocante", date=datetime.now(UTC) - timedelta(days=1))


@pytest.fixture(name="sample_group")
def sample_group_fixture(session: Session) -> Group:
    """Create a group created by Alice."""
    group = Group(name="CE1 Jules Ferry", code="ABC234", created_by="Alice")
    session.add(group)
    session.commit()
    session.refresh(group)
    return group


@pytest.fixture(name="add_subscription")
def add_subscription_fixture(session: Session):
    """Factory storing push subscriptions."""

    def add(endpoint: str, username: str = "", group_ids=None) -> PushSubscription:
        subscription = PushSubscription(
            endpoint=endpoint,
            p256dh="p256dh-key",
            auth="auth-secret",
            username=username,
            username_key=name_key(username),
            group_ids=[str(g) for g in group_ids or []],
        )
        session.add(subscription)
        session.commit()
        session.refresh(subscription)
        return subscription

    return add
