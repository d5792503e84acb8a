"""Shared test fixtures for Blobtrail."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from blobtrail.config import AzureAccountSettings, ScopeSettings, Settings
from blobtrail.database import create_engine
from blobtrail.ledger.sql import SqlVersionLedger
from blobtrail.main import create_app
from blobtrail.models.base import Base
from blobtrail.services.scanner_service import Scanner
from blobtrail.storage.base import StorageScope
from tests.fakes import InMemoryObjectSource

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

TEST_ACCOUNT = "acct"
TEST_CONTAINER = "configs"


def make_path(blob_path: str, container: str = TEST_CONTAINER) -> str:
    """Canonical path of a blob in the test account."""
    return f"{TEST_ACCOUNT}/{container}/{blob_path}"


@asynccontextmanager
async def create_test_client(
    settings: Settings, source: InMemoryObjectSource
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB schema, ledger,
    scanner) because ASGITransport does not trigger it. The scanner is not
    started; tests drive cycles through ``POST /api/scan``.
    """
    app = create_app(settings, object_source=source)

    engine, session_factory = create_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    ledger = SqlVersionLedger(session_factory)
    app.state.ledger = ledger
    app.state.scanner = Scanner(
        source,
        ledger,
        settings.storage_scopes(),
        interval_seconds=settings.scan_interval_seconds,
    )

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database and one watched container."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        scan_enabled=False,
        azure_accounts=[
            AzureAccountSettings(name=TEST_ACCOUNT, connection_string="UseDevelopmentStorage=true")
        ],
        scopes=[ScopeSettings(account=TEST_ACCOUNT, containers=[TEST_CONTAINER])],
    )


@pytest.fixture
async def db_engine_and_factory(
    test_settings: Settings,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]]]:
    """Create a test database with the schema in place."""
    engine, session_factory = create_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine, session_factory
    await engine.dispose()


@pytest.fixture
def db_engine(
    db_engine_and_factory: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> AsyncEngine:
    return db_engine_and_factory[0]


@pytest.fixture
async def db_session(
    db_engine_and_factory: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    _, session_factory = db_engine_and_factory
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(
    db_engine_and_factory: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> SqlVersionLedger:
    return SqlVersionLedger(db_engine_and_factory[1])


@pytest.fixture
def source() -> InMemoryObjectSource:
    return InMemoryObjectSource()


@pytest.fixture
def scope() -> StorageScope:
    return StorageScope(account=TEST_ACCOUNT, containers=(TEST_CONTAINER,), patterns=("*.yaml",))


@pytest.fixture
def scanner(
    source: InMemoryObjectSource, ledger: SqlVersionLedger, scope: StorageScope
) -> Scanner:
    return Scanner(source, ledger, [scope], interval_seconds=0.05)
