import os

# Settings are read at import time; these must be set before any app import.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow
os.environ["AUTH_SECRET"] = TEST_AUTH_SECRET
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite:///:memory:"
# The test client talks plain http; Secure cookies would never be sent back
os.environ["AUTH_COOKIE_SECURE"] = "false"

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Iterator  # noqa: E402
from dataclasses import dataclass  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings  # noqa: E402
from app.core.errors import NotificationFailedError  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.core.tokens import create_session_token  # noqa: E402
from app.models import Base, User, UserRole  # noqa: E402
from app.repositories.oauth_link_repository import OAuthLinkRepository  # noqa: E402
from app.repositories.user_repository import UserRepository  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"  # nosec B105


# =============================================================================
# Helpers
# =============================================================================


@dataclass(frozen=True)
class SentCode:
    """One email captured by RecordingMailer."""

    kind: str
    to_email: str
    code: str


class RecordingMailer:
    """Mailer that keeps every message in memory.

    Set ``fail = True`` to make every send raise NotificationFailedError.
    """

    def __init__(self) -> None:
        self.sent: list[SentCode] = []
        self.fail = False

    async def send_verification_code(self, *, to_email: str, code: str) -> None:
        self._record("verification", to_email, code)

    async def send_password_reset_code(self, *, to_email: str, code: str) -> None:
        self._record("password_reset", to_email, code)

    def _record(self, kind: str, to_email: str, code: str) -> None:
        if self.fail:
            raise NotificationFailedError()
        self.sent.append(SentCode(kind=kind, to_email=to_email, code=code))

    def last_code(self, kind: str, to_email: str | None = None) -> str:
        for message in reversed(self.sent):
            if message.kind == kind and to_email in (None, message.to_email):
                return message.code
        msg = f"No {kind} email captured"
        raise AssertionError(msg)


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


async def create_user(
    db: AsyncSession,
    *,
    email: str = "alice@example.com",
    password: str | None = TEST_PASSWORD,
    verified: bool = True,
    role: UserRole = UserRole.USER,
    name: str | None = None,
    provider: str | None = None,
    provider_account_id: str | None = None,
) -> User:
    """Create and commit a user.

    Pass ``password=None`` together with a provider to create an OAuth-only
    account.
    """
    oauth_link = None
    if provider is not None:
        oauth_link = OAuthLinkRepository.build(
            provider=provider,
            provider_account_id=provider_account_id or uuid.uuid4().hex,
            access_token="provider-access",  # nosec B106
            refresh_token="provider-refresh",  # nosec B106
        )
    user = await UserRepository.create(
        db,
        email=email,
        password_hash=hash_password(password) if password is not None else None,
        oauth_link=oauth_link,
        name=name,
        role=role,
        email_verified=datetime.now(UTC) if verified else None,
    )
    await db.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    """Authorization header carrying a fresh session token for ``user``."""
    token = create_session_token(user_id=user.id, role=user.role)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file per test, schema from the ORM metadata."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# API client
# =============================================================================


@pytest_asyncio.fixture
async def client(
    db_engine: AsyncEngine,
    mailer: RecordingMailer,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app with test database and mailer.

    Sets up:
    - get_db override with the same commit/rollback behaviour as production
    - get_mailer override returning the test's RecordingMailer
    - httpx.AsyncClient with ASGI transport

    No credentials are attached; pass ``headers=auth_headers(user)``.
    """
    from app.core.database import get_db
    from app.core.email import get_mailer
    from app.main import app

    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use bcrypt's minimum work factor so the suite stays fast."""
    monkeypatch.setattr(settings, "password_hash_rounds", 4)
    monkeypatch.setattr(settings, "code_hash_rounds", 4)


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.
    """
    from app.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
