import smtplib

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from perfhub.main import app
from perfhub.core.config import settings
from perfhub.db.base import Base
from perfhub.db.session import build_engine, get_db

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session():
    """
    One in-memory SQLite database per test.

    StaticPool hands every checkout the same connection, so the schema created
    here is the one the app sees. Application code may commit freely; the whole
    database disappears with the engine.
    """
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal(bind=engine)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def override_get_db(db_session):
    def _get_db_override():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_env_smtp(monkeypatch):
    # tests opt into SMTP through EmailConfig rows or the fake_smtp fixture
    monkeypatch.setattr(settings, "SMTP_HOST", None)


class FakeSMTP:
    """Stands in for smtplib.SMTP; every connection lands in `connections`."""

    connections: list = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.logins = []
        self.sent = []
        self.connections.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        self.logins.append((username, password))

    def send_message(self, msg):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(msg)

    @classmethod
    def messages(cls):
        return [m for conn in cls.connections for m in conn.sent]


@pytest.fixture()
def fake_smtp(monkeypatch):
    """Replace smtplib.SMTP and point the env SMTP settings at it."""

    class _SMTP(FakeSMTP):
        connections = []
        fail_with = None

    monkeypatch.setattr(smtplib, "SMTP", _SMTP)
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(settings, "SMTP_PORT", 587)
    monkeypatch.setattr(settings, "SMTP_USERNAME", "mailer")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "secret")
    return _SMTP


@pytest.fixture()
def client():
    return TestClient(app)
