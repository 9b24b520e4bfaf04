import asyncio
import inspect

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import crawlgate.domain.entities  # noqa: F401  registers the tables
from crawlgate.adapter.repositories.tenant_repository import TenantRepository
from crawlgate.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from crawlgate.app.services.capacity_planner import CapacityPlanner
from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.container import seed_default_plans
from crawlgate.domain.entities import PlanTier
from crawlgate.domain.values.capacity import ScalingConfig
from crawlgate.domain.values.tenancy import NewTenant


@pytest.fixture
def mock_uow():
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=False)  # Must return False to not suppress exceptions
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()
    return uow


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'unit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    return lambda: SqlAlchemyUnitOfWork(session_factory)


@pytest_asyncio.fixture
async def plans(uow_factory):
    await seed_default_plans(uow_factory)
    async with uow_factory() as uow:
        return {plan.tier: plan for plan in await uow.plans.list_all()}


@pytest.fixture
def planner():
    return CapacityPlanner(ScalingConfig())


@pytest.fixture
def registry(uow_factory, planner):
    return TenantRegistry(uow_factory, planner)


@pytest.fixture
def make_tenant(registry, plans):
    async def make(slug: str = "acme", tier: PlanTier = PlanTier.free):
        return await registry.create(
            NewTenant(name=slug.title(), slug=slug, plan_id=plans[tier].id)
        )

    return make


async def _wait_for(predicate, timeout: float = 2.0, interval: float = 0.01):
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return True
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(interval)


@pytest.fixture
def wait_for():
    """Poll an async predicate until it returns truthy or the timeout passes"""
    return _wait_for


@pytest.fixture
def gated_read(monkeypatch):
    """Hold the next tenant row read of a repository method until released.

    Returns (read_done, release): read_done is set once the row has been read,
    and the reader resumes only after release is set. Later reads pass through.
    """

    def gate(method_name: str):
        original = getattr(TenantRepository, method_name)
        read_done = asyncio.Event()
        release = asyncio.Event()

        async def gated(self, *args, **kwargs):
            row = await original(self, *args, **kwargs)
            if not read_done.is_set():
                read_done.set()
                await release.wait()
            return row

        monkeypatch.setattr(TenantRepository, method_name, gated)
        return read_done, release

    return gate
