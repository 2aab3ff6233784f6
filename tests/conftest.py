import os

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import procureflow.models  # noqa: F401
from procureflow.database import Base, build_engine, get_db
from procureflow.main import app
from procureflow.models.asset import Equipment
from procureflow.models.cost_center import CostCenter
from procureflow.models.user import User, UserRoleAssignment
from procureflow.models.vendor import Vendor
from procureflow.services.auth_service import create_access_token


@dataclass
class Directory:
    """Ids of the seeded identities and master data."""
    manager: uuid.UUID
    requester: uuid.UUID
    finance: uuid.UUID
    admin: uuid.UUID
    cost_center: uuid.UUID
    other_cost_center: uuid.UUID
    vendor: uuid.UUID
    equipment: uuid.UUID


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def directory(session_factory) -> Directory:
    """Requester reports to manager M; F holds the finance role; A is admin."""
    base = datetime(2026, 1, 1)
    ids = Directory(
        manager=uuid.uuid4(),
        requester=uuid.uuid4(),
        finance=uuid.uuid4(),
        admin=uuid.uuid4(),
        cost_center=uuid.uuid4(),
        other_cost_center=uuid.uuid4(),
        vendor=uuid.uuid4(),
        equipment=uuid.uuid4(),
    )
    async with session_factory() as s:
        s.add_all([
            User(id=ids.manager, email="m@acme.test", name="M", role="manager", created_at=base),
            User(id=ids.finance, email="f@acme.test", name="F", role="finance",
                 created_at=base + timedelta(minutes=1)),
            User(id=ids.admin, email="a@acme.test", name="A", role="admin",
                 created_at=base + timedelta(minutes=2)),
        ])
        await s.flush()
        s.add(User(id=ids.requester, email="r@acme.test", name="R", role="employee",
                   manager_id=ids.manager, created_at=base + timedelta(minutes=3)))
        s.add(UserRoleAssignment(user_id=ids.finance, role_name="finance"))
        s.add_all([
            CostCenter(id=ids.cost_center, code="CC-1", name="Engineering"),
            CostCenter(id=ids.other_cost_center, code="CC-2", name="Operations"),
            Vendor(id=ids.vendor, name="Alpha Supplies", tax_id="TAX-1"),
            Equipment(id=ids.equipment, asset_tag="EQ-1", name="Laser cutter"),
        ])
        await s.commit()
    return ids


@pytest_asyncio.fixture
async def db(session_factory, directory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory, directory):
    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def make_headers(user_id: uuid.UUID, role: str, idempotency_key: str = None) -> dict:
    token = create_access_token(str(user_id), role, f"{role}@acme.test")
    headers = {"Authorization": f"Bearer {token}"}
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    return headers


@pytest.fixture
def headers_for(directory):
    roles = {
        "manager": (directory.manager, "manager"),
        "requester": (directory.requester, "employee"),
        "finance": (directory.finance, "finance"),
        "admin": (directory.admin, "admin"),
    }

    def _headers(who: str, idempotency_key: str = None) -> dict:
        user_id, role = roles[who]
        return make_headers(user_id, role, idempotency_key)

    return _headers
