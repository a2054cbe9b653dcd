import os
import sys
from datetime import datetime, timedelta, timezone

import bcrypt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///./merchantpay-test.db")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from merchantpay.api import deps  # noqa: E402
from merchantpay.config import Settings  # noqa: E402
from merchantpay.database import Base  # noqa: E402
from merchantpay.main import create_app  # noqa: E402
from merchantpay.models.user import Role, User  # noqa: E402

SECRET_KEY = os.environ["SECRET_KEY"]


class FakeClock:
    """Settable UTC clock shared by the codec and the session store."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def fast_hash(password: str) -> str:
    # Low work factor keeps the suite quick; verification reads the cost from the hash.
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


def add_user(db, email: str, password: str = "pw", role: Role = Role.CASHIER, **fields) -> User:
    user = User(
        email=email,
        password_hash=fast_hash(password),
        first_name=fields.pop("first_name", "Test"),
        last_name=fields.pop("last_name", "User"),
        role=role,
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def build_test_client(clock=None, rate_limiter=None, **settings_overrides):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    settings_overrides.setdefault("rate_limit_enabled", False)
    settings = Settings(_env_file=None, **settings_overrides)
    app = create_app(settings, clock=clock or FakeClock(), rate_limiter=rate_limiter)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    return TestClient(app), TestingSessionLocal


def login(client: TestClient, email: str, password: str = "pw"):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def clock():
    return FakeClock()
