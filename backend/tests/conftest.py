"""
Shared fixtures: in-memory database, fake identity and a controllable clock.
"""
import os

# Must be set before pixelcanvas reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_REQUESTS"] = "0"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["STRIPE_PRICE_COLORS_60"] = "price_colors_60"
os.environ["STRIPE_PRICE_COLORS_120"] = "price_colors_120"
os.environ["STRIPE_PRICE_COLORS_ALL_MONTHLY"] = "price_colors_all"
os.environ["STRIPE_PRICE_PIXELS_100"] = "price_pixels_100"

from typing import Optional

import pytest
from fastapi import Header, HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pixelcanvas.main import app
from pixelcanvas.api.deps import get_now_ms
from pixelcanvas.auth import get_current_claims
from pixelcanvas.database import Base, get_db
from pixelcanvas.models import User

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 2025-03-14T12:00:00Z
BASE_TIME_MS = 1_741_953_600_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = BASE_TIME_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


server_clock = FakeClock()


def override_get_db():
    """Override database dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


async def override_get_current_claims(authorization: Optional[str] = Header(default=None)) -> dict:
    """Treat the bearer token as the uid instead of verifying it."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing auth token")
    uid = authorization[len("Bearer "):]
    return {"uid": uid, "name": f"name-{uid}", "email": f"{uid}@test.com"}


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_current_claims] = override_get_current_claims
app.dependency_overrides[get_now_ms] = lambda: server_clock()

client = TestClient(app)


def auth(uid: str) -> dict:
    return {"Authorization": f"Bearer {uid}"}


def make_user(uid: str, **fields) -> User:
    values = dict(
        uid=uid,
        display_name=f"painter-{uid}",
        email=f"{uid}@test.com",
        free_pixels=100,
        play_points=0,
        last_placed_at=0,
    )
    values.update(fields)
    return User(**values)


@pytest.fixture(autouse=True)
def setup_database():
    """Create and tear down test database for each test."""
    server_clock.now = BASE_TIME_MS
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_db():
    """Get test database session."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return server_clock


@pytest.fixture
def sample_users(test_db):
    """Three provisioned users; u3 is an admin."""
    users = [
        make_user("u1"),
        make_user("u2", display_name="bob"),
        make_user("u3", display_name="carol", role="admin"),
    ]
    test_db.add_all(users)
    test_db.commit()
    return users


@pytest.fixture
def broadcasts(monkeypatch):
    """Record realtime broadcasts instead of sending them."""
    from pixelcanvas.realtime import manager

    sent = []

    async def fake_broadcast(event, data):
        sent.append((event, data))
        return 0

    monkeypatch.setattr(manager, "broadcast", fake_broadcast)
    return sent
