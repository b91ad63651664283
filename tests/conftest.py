import os
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# IMPORTANT: settings are read once on first import of app.*, so the test
# environment has to be in place before anything from app is imported.
_DB_PATH = os.path.join(tempfile.gettempdir(), "password_reset_otp_tests.db")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["SERVICE_ANON_KEY"] = "anon-test-key"
os.environ["SERVICE_ROLE_KEY"] = "service-role-test-key"
os.environ["CREDENTIAL_STORE"] = "local"
os.environ["BREVO_API_KEY"] = ""
os.environ["OTP_TTL_SECONDS"] = "120"

import pytest
import pytest_asyncio

from app.db import engine, SessionLocal
from app.errors import CredentialStoreFailure, NotifierFailure
from app.models import Base
from app.repos import users as users_repo
from app.services import password_reset as reset_service
from app.services.credential_store import LocalCredentialStore, get_password_hash

USER_EMAIL = "user@example.com"
OLD_PASSWORD = "oldpass123"


# Fresh schema per test, on the SAME loop as the test function. The engine is
# disposed afterwards so no pooled connection leaks into the next loop.
@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def _schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# No Redis in tests: the per-email lock becomes a pass-through.
@pytest.fixture(autouse=True)
def _no_email_lock(monkeypatch):
    @asynccontextmanager
    async def _passthrough(email: str):
        yield

    monkeypatch.setattr(reset_service, "email_lock", _passthrough)
    yield


@pytest_asyncio.fixture
async def db():
    async with SessionLocal() as s:
        yield s


@pytest_asyncio.fixture
async def user_id(db):
    u = await users_repo.create(
        db, email=USER_EMAIL, password_hash=get_password_hash(OLD_PASSWORD), display_name="Juan"
    )
    await db.commit()
    # the id, not the instance: service rollbacks expire instances in this session
    return u.id


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock(monkeypatch):
    c = Clock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(reset_service, "_now_utc", c)
    return c


class FakeNotifier:
    """Captures outgoing mail instead of calling Brevo."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send(self, *, to: str, subject: str, html_body: str, text_body: str) -> None:
        if self.fail:
            raise NotifierFailure("Email service error: boom")
        self.sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})


class RecordingStore(LocalCredentialStore):
    """Local store that counts calls so tests can assert nothing was touched."""

    def __init__(self, db, *, fail_update: bool = False):
        super().__init__(db)
        self.lookups = 0
        self.updates = 0
        self.fail_update = fail_update

    async def lookup(self, email):
        self.lookups += 1
        return await super().lookup(email)

    async def set_password(self, user, new_password):
        self.updates += 1
        if self.fail_update:
            raise CredentialStoreFailure("Failed to update password: provider down")
        await super().set_password(user, new_password)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store(db):
    return RecordingStore(db)
