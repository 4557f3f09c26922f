# tests/conftest.py
import os
import re
import tempfile
from pathlib import Path
from typing import NamedTuple

# Settings are read at import time, so the environment must be in place first.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="eventhub-tests-"))
os.environ.update({
    "ENVIRONMENT": "DEV",
    "DEBUG": "false",
    "LOG_LEVEL": "WARNING",
    "CLIENT_URL": "http://localhost:3000",
    "DATABASE_URL": f"sqlite+aiosqlite:///{_TMP_DIR / 'eventhub.db'}",
    "ACCESS_TOKEN_SECRET": "test-access-secret-0123456789abcdef",
    "REFRESH_TOKEN_SECRET": "test-refresh-secret-0123456789abcdef",
    "PASSWORD_RESET_SECRET": "test-reset-secret-0123456789abcdef",
    "BCRYPT_ROUNDS": "4",
    "MAIL_SERVER": "smtp.eventhub.io",
    "MAIL_USERNAME": "no-reply@eventhub.io",
    "MAIL_PASSWORD": "unused",
    "MAIL_FROM": "no-reply@eventhub.io",
    "CORS_ORIGINS": '["http://localhost:3000"]',
})

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from eventhub.infrastructure.database import Base, CredentialStore, OtpStore, get_db
from eventhub.dependencies.stores import get_notifier
from eventhub.services.otp_service import OtpService
from eventhub.services.auth import auth_user_service


class SentEmail(NamedTuple):
    to_email: str
    subject: str
    text_body: str
    html_body: str


class FakeNotifier:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent: list[SentEmail] = []

    async def send_email(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        self.sent.append(SentEmail(to_email, subject, text_body, html_body))

    def last_to(self, email: str) -> SentEmail:
        for message in reversed(self.sent):
            if message.to_email == email:
                return message
        raise AssertionError(f"No email sent to {email}")


def otp_from(message: SentEmail) -> str:
    match = re.search(r"code is (\d+)", message.text_body)
    assert match, f"No code in: {message.text_body!r}"
    return match.group(1)

def reset_token_from(message: SentEmail) -> str:
    return message.text_body.split("token=", 1)[1].strip()


@pytest.fixture
def session_factory(tmp_path):
    db_file = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{db_file}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool)
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session):
    return CredentialStore(db_session)


@pytest.fixture
def otp_store(db_session):
    return OtpStore(db_session)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def otp_service(otp_store, notifier):
    return OtpService(otp_store, notifier)


@pytest.fixture
def make_user(store):
    async def _make_user(
        email: str = "ali@eventhub.io",
        password: str = "Passw0rd",
        full_name: str = "Ali",
        phone: str = "03001234567",
        role=None
    ):
        await auth_user_service.signup(store, full_name, email, phone, password, role)
        return await store.find_user_by_email(email)
    return _make_user


@pytest.fixture
def client(session_factory, notifier):
    from eventhub.main import app

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
