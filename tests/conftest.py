"""Pytest configuration and fixtures."""

from datetime import timedelta

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gatekeeper.clock import utcnow
from gatekeeper.config import Settings
from gatekeeper.csrf import CSRF_HEADER_NAME
from gatekeeper.database import Base
from gatekeeper.models.login_attempt import LoginAttempt  # noqa: F401
from gatekeeper.models.session import AuthSession  # noqa: F401
from gatekeeper.models.user import Role, User
from gatekeeper.services.passwords import hash_password

DEFAULT_PASSWORD = "Str0ng!Passw0rd"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class SleepRecorder:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    """Settings with a cheap bcrypt cost."""
    settings = Settings()
    settings.DATABASE_URL = "sqlite://"
    settings.APP_ENV = "test"
    settings.BCRYPT_ROUNDS = 4
    return settings


@pytest.fixture(name="clock")
def clock_fixture() -> FrozenClock:
    return FrozenClock()


@pytest.fixture(name="sleeps")
def sleeps_fixture() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="client")
def client_fixture(settings: Settings, session_factory, clock: FrozenClock, sleeps: SleepRecorder):
    """Create a test client on the test database with a frozen clock and disabled rate limiting."""
    from gatekeeper.rate_limit import limiter
    from main import create_app

    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.clock = clock
    app.state.sleep = sleeps

    limiter.enabled = False
    with TestClient(app) as c:
        c.headers[CSRF_HEADER_NAME] = c.get("/api/auth/csrf-token").json()["token"]
        yield c
    limiter.enabled = True


@pytest.fixture(name="make_user")
def make_user_fixture(db_session: Session, settings: Settings):
    """Factory that stores a user directly in the database."""

    def _make(
        email: str = "admin@example.com",
        role: Role | str = Role.ADMIN,
        password: str = DEFAULT_PASSWORD,
        name: str = "Test User",
        is_active: bool = True,
        two_factor: bool = False,
    ) -> User:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(password, rounds=settings.BCRYPT_ROUNDS),
            role=Role(role).value,
            is_active=is_active,
            two_factor_enabled=two_factor,
            two_factor_secret=pyotp.random_base32() if two_factor else None,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture(name="login")
def login_fixture(client: TestClient):
    """Sign a user in through the API so the client carries the session cookie."""

    def _login(user: User, password: str = DEFAULT_PASSWORD) -> dict:
        response = client.post("/api/auth/login", json={"email": user.email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()

    return _login
