"""
Pytest configuration for lock reason / user info tests.

Store-backed tests run against a temporary SQLite file with the production
table layout (sqlite+aiosqlite driver). No external services are required.
"""

import os
import sys

import pytest
import pytest_asyncio
from sqlalchemy.pool import NullPool

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from helpers import BrokenDatabase, CountingDatabase, create_store


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: runs queries against a SQLite store")


@pytest.fixture
def store(tmp_path):
    """
    Empty store file for one test.

    Returns:
        tuple: (sqlite file path, SQLAlchemy async URL)
    """
    path = str(tmp_path / "store.db")
    url = create_store(path)
    return path, url


@pytest_asyncio.fixture
async def db(store):
    """CountingDatabase bound to the test store; engines disposed afterwards."""
    _, url = store
    database = CountingDatabase(url, poolclass=NullPool)
    yield database
    await database.close()


@pytest_asyncio.fixture
async def broken_db(store):
    """Database whose every query raises StoreError."""
    _, url = store
    database = BrokenDatabase(url, poolclass=NullPool)
    yield database
    await database.close()
