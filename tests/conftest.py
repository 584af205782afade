"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedhub.config import Settings
from feedhub.core.collection_store import CollectionStore
from feedhub.core.source_store import SourceStore
from feedhub.core.synchronizer import Synchronizer
from feedhub.models.database import create_session_factory, create_tables
from tests.helpers import FakeFetcher


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """测试配置."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        fetch_concurrency=2,
        fetch_timeout_seconds=30,
        interactive_fetch_timeout_seconds=5,
        shutdown_grace_seconds=0.5,
    )


@pytest_asyncio.fixture
async def session_factory(
    settings: Settings,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """创建测试用的临时文件数据库."""
    engine, factory = create_session_factory(settings.database_url)
    await create_tables(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def collections(session_factory: async_sessionmaker[AsyncSession]) -> CollectionStore:
    return CollectionStore(session_factory, prune_on_unsubscribe=True)


@pytest.fixture
def sources(
    session_factory: async_sessionmaker[AsyncSession], collections: CollectionStore
) -> SourceStore:
    return SourceStore(session_factory, collections)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def synchronizer(
    fetcher: FakeFetcher,
    sources: SourceStore,
    collections: CollectionStore,
    settings: Settings,
) -> Synchronizer:
    return Synchronizer(fetcher, sources, collections, settings)
