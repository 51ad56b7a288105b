# Imports for testing tools
import os
import datetime
import itertools
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from unittest.mock import AsyncMock

# Point the application at the test database before it is imported
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_booking.db"
os.environ.setdefault("DATABASE_URL", SQLALCHEMY_DATABASE_URL)

# Import your application code
from shareit.main import app
from shareit.database import Base, get_db
from shareit.dependencies import get_clock
from shareit import models

# Every test runs at this instant
NOW = datetime.datetime(2030, 1, 1, 12, 0)

# --- Test Database Setup ---
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# --- Database Management Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def setup_db():
    """Creates and drops the test database tables."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """Provides a clean database session for each test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()

@pytest.fixture
def clock():
    """A fixed clock for deterministic temporal filters."""
    return lambda: NOW

# --- Test data factories ---
_ids = itertools.count(1)

@pytest.fixture
def make_user(db_session):
    def _make_user(name: str = "user"):
        n = next(_ids)
        user = models.User(name=f"{name}{n}", email=f"{name}{n}@example.com")
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user

@pytest.fixture
def make_item(db_session):
    def _make_item(owner: models.User, available: bool = True, name: str = "Drill"):
        item = models.Item(name=name, description=f"{name} for rent", available=available, owner_id=owner.id)
        db_session.add(item)
        db_session.commit()
        return item
    return _make_item

@pytest.fixture
def make_booking(db_session):
    def _make_booking(item: models.Item, booker: models.User, start: datetime.datetime,
                      end: datetime.datetime, status=models.BookingStatus.WAITING):
        booking = models.Booking(item_id=item.id, booker_id=booker.id, start=start, end=end, status=status)
        db_session.add(booking)
        db_session.commit()
        return booking
    return _make_booking

# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_background_tasks(mocker):
    """
    Mocks the outbox poller that runs on app lifespan.
    """
    mocker.patch("shareit.main.run_outbox_poller", new_callable=AsyncMock)

# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db_session, clock):
    """Provides a TestClient for the booking service."""
    def override_get_db():
        """
        Overrides the get_db dependency for booking tests.
        The session stays open so test objects remain attached.
        """
        yield db_session

    # Apply the database and clock overrides
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    # Create and yield the TestClient
    with TestClient(app) as c:
        yield c

    # Clean up overrides
    app.dependency_overrides.clear()
