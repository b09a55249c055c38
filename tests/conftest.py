# tests/conftest.py

import pytest
from unittest.mock import patch

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

import enrollment.models  # noqa: F401
from enrollment.db.base_class import Base
from enrollment.db.session import get_db
from enrollment.main import app
from enrollment.services.notifications import get_notifier
from enrollment.services.offering_service import OfferingService
from enrollment.services.payment import get_payment_provider
from enrollment.services.registration_service import RegistrationService
from enrollment.services.waitlist_service import WaitlistService
from tests.utils.fakes import FakePaymentProvider, RecordingNotifier



# --- Test Database Setup ---
# In-memory SQLite so the real ORM mappings, check constraints and partial
# unique indexes are exercised. SQLite ignores FOR UPDATE.
@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# --- Collaborator fakes ---
@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def payment_provider():
    return FakePaymentProvider()


@pytest.fixture
def waitlist_service(db, notifier, payment_provider):
    return WaitlistService(db, notifier=notifier, payment_provider=payment_provider)


@pytest.fixture
def registration_service(db, notifier, payment_provider, waitlist_service):
    return RegistrationService(
        db,
        payment_provider=payment_provider,
        notifier=notifier,
        waitlist_service=waitlist_service,
    )


@pytest.fixture
def offering_service(db, notifier):
    return OfferingService(db, notifier=notifier)


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def client(session_factory, notifier, payment_provider):
    """
    TestClient backed by the SQLite test database, with the payment provider
    and notifier replaced by fakes. Authentication is real (JWT); use
    tests.utils.auth to build headers.
    """

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: payment_provider
    app.dependency_overrides[get_notifier] = lambda: notifier

    # Keep the scheduler and the Kafka producer out of API tests
    with patch("enrollment.main.init_scheduler"), patch("enrollment.main.shutdown_scheduler"), \
         patch("enrollment.main.get_notifier"):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()
