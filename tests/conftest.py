import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from hymnbook import auth, services, tasks  # noqa: E402
from hymnbook.api import app  # noqa: E402
from hymnbook.auth import create_access_token  # noqa: E402
from hymnbook.config import settings  # noqa: E402
from hymnbook.database import Base  # noqa: E402
from hymnbook.models.user import User  # noqa: E402


@pytest.fixture
def session_local(monkeypatch):
    """Provide an isolated in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    for module in (auth, services, tasks):
        monkeypatch.setattr(module, "SessionLocal", TestingSessionLocal)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture(autouse=True)
def trusted_threshold(monkeypatch):
    monkeypatch.setattr(settings, "trusted_threshold", 5)
    return 5


@pytest.fixture
def make_user(session_local):
    """Create a user directly in the store and return it detached."""

    def _make_user(username: str, approved_count: int = 0, is_admin: bool = False) -> User:
        session = session_local()
        try:
            user = User(
                username=username,
                password_hash="!",
                approved_count=approved_count,
                is_admin=is_admin,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user
        finally:
            session.close()

    return _make_user


@pytest.fixture
def approved_count(session_local):
    def _approved_count(user_id: int) -> int:
        session = session_local()
        try:
            return session.get(User, user_id).approved_count
        finally:
            session.close()

    return _approved_count


@pytest.fixture
def client(session_local):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _auth_headers
