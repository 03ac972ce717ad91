"""
Integration fixtures: a throwaway SQLite database per test.

A file-backed database (not ``:memory:``) so that separate sessions really
use separate connections, which the optimistic-locking test relies on.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from erp.database import Base

# Import models so they are registered with Base.metadata
import erp.models  # noqa: F401


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'erp.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
