"""Pytest configuration and fixtures."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, select

from portal.main import app
from portal.core.config import get_settings
from portal.core.database import get_session
from portal.core.rate_limit import attempt_limiter, limiter
from portal.core.security import create_access_token
from portal.models import Committee, Role, RoleName, User, VerificationStatus
from portal.services.email import EmailError, EmailSender, OutgoingEmail, get_email_sender
from portal.services.system_config import ConfigService


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeEmailSender(EmailSender):
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        super().__init__()
        self.sent: list[OutgoingEmail] = []
        self.fail_for: set[str] = set()

    @property
    def configured(self) -> bool:
        return True

    async def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        if to in self.fail_for:
            raise EmailError(f"Failed to send email to {to}")
        self.sent.append(OutgoingEmail(to=to, subject=subject, text=text, html=html))

    def sent_to(self, address: str) -> list[OutgoingEmail]:
        return [message for message in self.sent if message.to == address]


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    """Point document and audit-log storage at a per-test directory."""
    settings = get_settings()
    monkeypatch.setattr(settings, "documents_dir", tmp_path / "documents")
    monkeypatch.setattr(settings, "audit_log_dir", tmp_path / "logs")
    return tmp_path


@pytest.fixture(autouse=True)
def reset_rate_limits():
    attempt_limiter.clear()
    limiter.reset()
    yield
    attempt_limiter.clear()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session with default config, roles and templates."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session() as session:
        await ConfigService(session).seed_defaults()
        yield session


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest_asyncio.fixture(scope="function")
async def client(test_session, email_sender) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with overridden dependencies."""

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(
    session: AsyncSession,
    email: str,
    roles: list[RoleName] | None = None,
    committees: list[Committee] | None = None,
    status: VerificationStatus = VerificationStatus.VERIFIED,
    first_name: str = "Test",
    last_name: str = "User",
    unit_number: str = "101",
) -> User:
    """Insert a user holding ``roles`` and belonging to ``committees``."""
    names = [role.value for role in roles or []]
    result = await session.execute(select(Role).where(Role.name.in_(names)))
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone="555-0100",
        unit_number=unit_number,
        verification_status=status,
        roles=list(result.scalars().all()),
        committees=list(committees or []),
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def committee(test_session) -> Committee:
    """Create a committee for testing."""
    committee = Committee(name="Finance", description="Budget and reserves")
    test_session.add(committee)
    await test_session.commit()
    await test_session.refresh(committee)
    return committee


@pytest_asyncio.fixture(scope="function")
async def other_committee(test_session) -> Committee:
    committee = Committee(name="Landscaping")
    test_session.add(committee)
    await test_session.commit()
    await test_session.refresh(committee)
    return committee


@pytest_asyncio.fixture(scope="function")
async def admin_user(test_session) -> User:
    """Create dbadmin user for testing."""
    return await create_user(
        test_session,
        "admin@test.com",
        roles=[RoleName.DBADMIN, RoleName.USER],
        first_name="Ada",
        last_name="Admin",
        unit_number="PH1",
    )


@pytest_asyncio.fixture(scope="function")
async def publisher_user(test_session, committee) -> User:
    """Create publisher who belongs to the test committee."""
    return await create_user(
        test_session,
        "publisher@test.com",
        roles=[RoleName.PUBLISHER, RoleName.USER],
        committees=[committee],
        first_name="Pat",
        last_name="Publisher",
        unit_number="201",
    )


@pytest_asyncio.fixture(scope="function")
async def verifier_user(test_session) -> User:
    """Create verifier user for testing."""
    return await create_user(
        test_session,
        "verifier@test.com",
        roles=[RoleName.VERIFIER, RoleName.USER],
        first_name="Val",
        last_name="Verifier",
        unit_number="301",
    )


@pytest_asyncio.fixture(scope="function")
async def calendar_user(test_session) -> User:
    """Create calendar manager for testing."""
    return await create_user(
        test_session,
        "calendar@test.com",
        roles=[RoleName.CALENDAR, RoleName.USER],
        first_name="Cal",
        last_name="Endar",
        unit_number="601",
    )


@pytest_asyncio.fixture(scope="function")
async def resident_user(test_session) -> User:
    """Create verified resident with no committee memberships."""
    return await create_user(
        test_session,
        "resident@test.com",
        roles=[RoleName.USER, RoleName.RESIDENT],
        first_name="Rita",
        last_name="Resident",
        unit_number="401",
    )


@pytest_asyncio.fixture(scope="function")
async def pending_user(test_session) -> User:
    """Create user awaiting verification."""
    return await create_user(
        test_session,
        "pending@test.com",
        roles=[RoleName.RESIDENT],
        status=VerificationStatus.PENDING,
        first_name="Penny",
        last_name="Pending",
        unit_number="501",
    )


def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id)})


@pytest.fixture
def admin_token(admin_user) -> str:
    return token_for(admin_user)


@pytest.fixture
def publisher_token(publisher_user) -> str:
    return token_for(publisher_user)


@pytest.fixture
def verifier_token(verifier_user) -> str:
    return token_for(verifier_user)


@pytest.fixture
def calendar_token(calendar_user) -> str:
    return token_for(calendar_user)


@pytest.fixture
def resident_token(resident_user) -> str:
    return token_for(resident_user)


@pytest.fixture
def pending_token(pending_user) -> str:
    return token_for(pending_user)


def auth_headers(token: str) -> dict:
    """Create authorization headers."""
    return {"Authorization": f"Bearer {token}"}
