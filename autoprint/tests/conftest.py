"""
Centralized Test Configuration.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from autoprint.app.main import app
from autoprint.app.db.session import get_db, Base
from autoprint.app.core.jwt import create_access_token
from autoprint.app.core.sessions import InMemorySessionStore
from autoprint.app.domain.billing.payment_verifier import PaymentVerifier
from autoprint.app.models.account import Account
from autoprint.app.models.document import Document
from autoprint.app.models.enums import AccountRole
from autoprint.app.models.billing_enums import PaymentMethod
from autoprint.app.models.print_job_enums import ColorMode

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

OPERATOR = {"username": "admin", "email": "admin@autoprint.com"}


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def setex(self, key, seconds, value):
        self.store[key] = value
        self.ttls[key] = seconds
        return True

    async def expire(self, key, seconds):
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            self.ttls.pop(key, None)
            return 1
        return 0

    async def flushdb(self):
        self.store = {}
        self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture(autouse=True)
def apply_overrides():
    """Route the app to the test database and give each test a fresh session store."""
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    original_store = app.state.session_store
    app.state.session_store = InMemorySessionStore(timedelta(hours=24))
    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}
    app.state.session_store = original_store


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def _make_account(db: AsyncSession, username: str = "student1", is_active: bool = True) -> Account:
    account = Account(
        email=f"{username}@campus.edu",
        username=username,
        full_name=username.title(),
        role=AccountRole.STUDENT,
        is_active=is_active
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return account


async def _make_document(
    db: AsyncSession,
    account_id: int,
    page_count: int = 5,
    copies: int = 1,
    color_mode: ColorMode = ColorMode.BLACK_AND_WHITE
) -> Document:
    document = Document(
        account_id=account_id,
        original_name="lecture.pdf",
        file_name="lecture-0001.pdf",
        mime_type="application/pdf",
        file_size=1024,
        page_count=page_count,
        copies=copies,
        color_mode=color_mode
    )
    db.add(document)
    await db.commit()
    await db.refresh(document)
    return document


async def _top_up(db: AsyncSession, account_id: int, amount) -> None:
    """Credit an account the way production does: a payment that gets verified."""
    payment = await PaymentVerifier.create_payment(db, account_id, Decimal(amount), PaymentMethod.MOBILE_WALLET)
    await PaymentVerifier.verify(db, payment.id, OPERATOR["username"])


def _student_headers(account: Account) -> dict:
    token = create_access_token(
        data={"sub": account.username, "account_id": account.id, "role": AccountRole.STUDENT.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def student(db_session):
    return await _make_account(db_session)


@pytest.fixture
def auth_headers(student):
    return _student_headers(student)


@pytest.fixture
async def operator_headers():
    token = await app.state.session_store.create(OPERATOR["username"], OPERATOR["email"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def make_account():
    return _make_account


@pytest.fixture
def make_document():
    return _make_document


@pytest.fixture
def top_up():
    return _top_up


@pytest.fixture
def student_headers():
    return _student_headers


@pytest.fixture
def operator():
    return dict(OPERATOR)
