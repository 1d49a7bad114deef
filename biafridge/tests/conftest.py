"""
Shared test fixtures

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool),
a recording mail sender in place of SMTP/SendGrid and a fake Google verifier.
Concurrency tests use a file-backed database instead, so that each session
gets its own connection.
"""

import os

# Settings are read at import time; configure them before importing the app.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_FILE"] = ""

from datetime import datetime, timedelta
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from biafridge.api.dependencies import get_google_verifier, get_mailer
from biafridge.api.main import app
from biafridge.api.errors import InvalidGoogleToken
from biafridge.api.services.google_identity import GoogleTokenVerifier
from biafridge.api.services.mail_service import MailSender
from biafridge.shared.database import (
    create_database_engine,
    create_session_factory,
    get_session,
    init_database,
)


class RecordingMailer(MailSender):
    """Collects outgoing mail. ``deliver=False`` simulates a failed transport."""

    name = "recording"

    def __init__(self, deliver: bool = True):
        self.deliver = deliver
        self.sent = []

    async def send(self, to, subject, html, from_name=None) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html, "from_name": from_name})
        return self.deliver


class FakeGoogleVerifier(GoogleTokenVerifier):
    """Accepts only the ID tokens it issued itself."""

    def __init__(self):
        super().__init__(client_id="test-client")
        self.claims = {}

    def issue(self, user_id, email, name=None, email_verified=True) -> str:
        token = f"google-id-token-{len(self.claims)}"
        self.claims[token] = {
            "sub": user_id,
            "email": email,
            "name": name,
            "email_verified": email_verified,
        }
        return token

    def verify_claims(self, token: str) -> dict:
        if token not in self.claims:
            raise InvalidGoogleToken()
        return self.claims[token]


class FrozenClock:
    """Settable clock for code that takes ``clock=``."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 3, 10, 9, 30)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
async def engine():
    engine = create_database_engine("sqlite+aiosqlite://")
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path):
    """Session factory over a SQLite file; sessions do not share a connection."""
    engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'fridge.db'}")
    await init_database(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def clock():
    return FrozenClock()


# ============================================================================
# Mail
# ============================================================================

@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def failing_mailer():
    return RecordingMailer(deliver=False)


# ============================================================================
# Google sign-in
# ============================================================================

@pytest.fixture
def google():
    return FakeGoogleVerifier()


# ============================================================================
# HTTP client
# ============================================================================

@pytest.fixture
async def client(session_factory, mailer, google):
    """Async HTTP client bound to the per-test database, mailer and Google verifier."""
    async def _get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_google_verifier] = lambda: google

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
