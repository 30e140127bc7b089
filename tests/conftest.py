"""
Pytest configuration and shared fixtures for the Room Reservation API.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["APP_ENV"] = "test"

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.models.room import Room, RoomStatus
from app.models.user import User, UserRole
from app.utils import clock
from app.utils.security import create_access_token


# Use an in-memory SQLite database for testing
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Every test runs at this instant unless it patches the clock itself
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch):
    monkeypatch.setattr(clock, "utcnow", lambda: NOW)
    return NOW


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client bound to the test session.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, name, email, role=UserRole.USER):
    user = User(name=name, email=email, role=role, isActive=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session):
    return _make_user(db_session, "Admin User", "admin@example.com", UserRole.ADMIN)


@pytest.fixture
def regular_user(db_session):
    return _make_user(db_session, "Regular User", "user@example.com")


@pytest.fixture
def other_user(db_session):
    return _make_user(db_session, "Other User", "other@example.com")


def auth_for(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_for(admin_user)


@pytest.fixture
def user_headers(regular_user):
    return auth_for(regular_user)


@pytest.fixture
def other_headers(other_user):
    return auth_for(other_user)


@pytest.fixture
def room(db_session):
    r = Room(name="R1", description="Ground floor meeting room", capacity=8, status=RoomStatus.FREE)
    db_session.add(r)
    db_session.commit()
    db_session.refresh(r)
    return r


@pytest.fixture
def second_room(db_session):
    r = Room(name="R2", capacity=20, status=RoomStatus.FREE)
    db_session.add(r)
    db_session.commit()
    db_session.refresh(r)
    return r


def book(client, headers, room_id, start, end, **extra):
    """POST a reservation and return the response."""
    body = {"roomId": room_id, "startTime": start, "endTime": end}
    body.update(extra)
    return client.post("/api/v1/reservations", json=body, headers=headers)
