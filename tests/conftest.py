import os

os.environ.setdefault("EXPENSES_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EXPENSES_COOKIE_SECURE", "false")
os.environ.setdefault("EXPENSES_SESSION_SECRET", "test-session-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from database import Base  # noqa: E402
from main import app, get_db  # noqa: E402
from sessions import SESSION_COOKIE, SessionUser, create_session_token  # noqa: E402


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sign_in(client):
    def _sign_in(user_id: str) -> None:
        user = SessionUser(id=user_id, email=f"{user_id}@example.com")
        client.cookies.set(SESSION_COOKIE, create_session_token(user))

    return _sign_in
