import os
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
# Force dev mode for default test app; production validation tests build their own Settings
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TELEGRAM_DRY_RUN", "true")
# Note: TELEGRAM_WEBHOOK_SECRET / ADMIN_API_KEY not set by default - tests opt in via monkeypatch
for _key in ("SQS_QUEUE_URL", "AWS_REGION", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
    os.environ.pop(_key, None)

from app.api.dependencies import get_notifier, get_queue_client  # noqa: E402
from app.core.errors import TransportError  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.deps import get_db  # noqa: E402

# Import all models so Base.metadata includes every table
import app.db.models as _models  # noqa: E402,F401
from app.db.models import Service, Slot  # noqa: E402
from app.main import app  # noqa: E402
from tests.helpers.booking_data import slot_start  # noqa: E402
from tests.helpers.fakes import FakeQueue, RecordingNotifier  # noqa: E402

# Test database URL (in-memory SQLite for fast tests)
SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    """Return True if the test database is SQLite (e.g. in-memory tests)."""
    url = SQLALCHEMY_DATABASE_URL or ""
    return url.startswith("sqlite")


# SQLite needs check_same_thread=False and StaticPool; Postgres does not support check_same_thread
if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Make the app (and the CLI job) use the same DB
import app.db.session as _db_session  # noqa: E402

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def failing_queue():
    queue = FakeQueue()
    queue.send_error = TransportError("SendMessage failed: 500 InternalError", status_code=500)
    return queue


@pytest.fixture(scope="function")
def client(db, notifier):
    """Create a test client with database, notifier and queue dependency overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_queue_client] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_service(db):
    def _make(service_id: str = "svc-1", name: str = "Haircut", active: bool = True, duration_min: int = 30):
        service = Service(id=service_id, name=name, duration_min=duration_min, active=active)
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture
def make_slot(db):
    def _make(
        slot_id: str,
        service_id: str = "svc-1",
        start=None,
        capacity: int = 1,
        booked_count: int = 0,
        duration_min: int = 30,
    ):
        start = start or slot_start()
        slot = Slot(
            id=slot_id,
            service_id=service_id,
            start_ts=start,
            end_ts=start + timedelta(minutes=duration_min),
            capacity=capacity,
            booked_count=booked_count,
        )
        db.add(slot)
        db.commit()
        return slot

    return _make
