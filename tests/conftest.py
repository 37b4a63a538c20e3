"""
tests/conftest.py
Shared fixtures: in-memory SQLite database, HTTP client against the app,
an admin account, and stub payment/storage backends.
"""

import os

# Settings are read at import time; configure before importing the app
os.environ["APP_ENV"] = "test"
os.environ["DEBUG"] = "false"
os.environ["SECRET_KEY"] = "test-session-secret"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"

import uuid
from datetime import date
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.database import Base, get_db
from main import app
from services.payment.gateway import ExternalOrder, PaymentGateway, get_payment_gateway
from services.upload.storage import ObjectStorage, get_object_storage
from shared.models.models import Admin, AdminRole
from shared.utils.exceptions import UpstreamError
from shared.utils.security import compute_razorpay_signature, create_access_token, hash_password
from shared.utils.validators import years_before

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
RAZORPAY_TEST_SECRET = "rzp_test_secret"
ADMIN_PASSWORD = "admin123"


# ── Stubs ─────────────────────────────────────────────────────

class StubGateway(PaymentGateway):
    """Issues fake order ids; signatures are checked with the test secret."""

    def __init__(self):
        super().__init__("rzp_test_key", RAZORPAY_TEST_SECRET)
        self.orders: List[ExternalOrder] = []
        self.fail = False

    async def create_order(self, amount_minor_units, currency, receipt, notes=None) -> ExternalOrder:
        if self.fail:
            raise UpstreamError("Payment gateway error. Please try again.")
        order = ExternalOrder(
            external_order_id=f"order_{uuid.uuid4().hex[:14]}",
            amount=amount_minor_units,
            currency=currency,
        )
        self.orders.append(order)
        return order


class StubStorage(ObjectStorage):
    def __init__(self):
        super().__init__("test-bucket", "https://cdn.test")
        self.objects = {}

    async def put(self, key: str, body: bytes, content_type: str) -> str:
        self.objects[key] = (body, content_type)
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)


# ── Helpers ───────────────────────────────────────────────────

def auth_headers(admin: Admin) -> dict:
    token, _ = create_access_token(str(admin.id), admin.username, admin.email, admin.role)
    return {"Authorization": f"Bearer {token}"}


def sign(order_id: str, payment_id: str, secret: str = RAZORPAY_TEST_SECRET) -> str:
    return compute_razorpay_signature(order_id, payment_id, secret)


def adult_dob(years: int = 30) -> str:
    return years_before(date.today(), years).isoformat()


# ── Database ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── App ───────────────────────────────────────────────────────

@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def storage() -> StubStorage:
    return StubStorage()


@pytest_asyncio.fixture
async def client(session_factory, gateway, storage) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_object_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Accounts ──────────────────────────────────────────────────

async def _make_admin(
    db: AsyncSession,
    username: str,
    role: AdminRole = AdminRole.ADMIN,
    is_active: bool = True,
    email: Optional[str] = None,
) -> Admin:
    admin = Admin(
        username=username,
        email=email or f"{username}@accurateastro.in",
        password_hash=hash_password(ADMIN_PASSWORD),
        role=role.value,
        is_active=is_active,
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    return admin


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> Admin:
    return await _make_admin(db, "astroadmin")


@pytest_asyncio.fixture
async def superadmin_user(db: AsyncSession) -> Admin:
    return await _make_admin(db, "superastro", role=AdminRole.SUPERADMIN)


@pytest_asyncio.fixture
async def inactive_admin(db: AsyncSession) -> Admin:
    return await _make_admin(db, "retired", is_active=False)
