"""
Shared pytest fixtures.

The database URL has to be set before any tradebook module is imported,
because the engine is created at import time.
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="tradebook-tests-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_DB_DIR, "tradebook.db")
os.environ["LOG_LEVEL"] = "WARNING"

import asyncio  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from tradebook.database import AsyncSessionLocal, init_models  # noqa: E402
from tradebook.models import Transaction  # noqa: E402
from tradebook.store import SQLAlchemyRecordStore  # noqa: E402


async def _clear_transactions():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await session.execute(delete(Transaction))


@pytest.fixture(scope="session", autouse=True)
def database_schema():
    asyncio.run(init_models())
    yield


@pytest.fixture
def sql_store():
    """SQLAlchemy record store on the test database, emptied after each test."""
    store = SQLAlchemyRecordStore(AsyncSessionLocal, Transaction.__table__)
    yield store
    asyncio.run(_clear_transactions())
