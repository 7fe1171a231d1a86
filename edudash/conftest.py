# edudash/conftest.py
import os
from datetime import datetime, timezone

import pytest

from edudash.core.database import (
    init_engine,
    dispose_engine,
    create_all_tables,
    drop_all_tables,
)


@pytest.fixture(scope="session")
def db_url():
    """
    Database used by the test run.

    Defaults to an in-memory SQLite database; set TEST_DATABASE_URL to run
    against Postgres instead.
    """
    return os.getenv("TEST_DATABASE_URL") or "sqlite://"


@pytest.fixture(scope="function", autouse=True)
def fresh_db(db_url):
    """Fresh engine and empty tables for every test."""
    dispose_engine()
    init_engine(db_url)
    create_all_tables()
    yield
    drop_all_tables()
    dispose_engine()


@pytest.fixture
def now():
    """Fixed mid-month instant used by time-sensitive tests."""
    return datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)
