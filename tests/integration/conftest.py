from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import crawlgate.domain.entities  # noqa: F401  registers the tables
from config import ApplicationConfig
from crawlgate.api.utils.jwt import generate_jwt
from crawlgate.container import build_governance, seed_default_plans

ADMIN_HEADERS = {"X-Admin-API-Key": "test-admin-key-12345"}


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with Session() as session:
        yield session


@pytest_asyncio.fixture
async def governance(engine):
    session_factory = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    governance = build_governance(ApplicationConfig, session_factory)
    await seed_default_plans(governance.uow_factory)
    await governance.start()
    yield governance
    await governance.stop()


@pytest_asyncio.fixture
async def client(governance):
    from crawlgate.api.app import create_app

    app = create_app(ApplicationConfig, governance=governance)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def create_tenant(client):
    async def create(slug: str = "acme", tier: str = "free") -> dict:
        response = await client.post(
            "/admin/tenants",
            json={"name": slug.title(), "slug": slug, "tier": tier},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return create


@pytest.fixture
def auth_headers():
    def headers(tenant: dict, role: str = "owner") -> dict:
        token = generate_jwt(uuid4(), tenant["id"], role)
        return {"Authorization": f"Bearer {token}"}

    return headers
