"""
Shared fixtures for integration tests.

Requires PostgreSQL to be running at ``DATABASE_URL`` (tests are skipped
otherwise). The schema is migrated once per session and every table is
emptied before each test.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool and migrate the schema."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """Empty identity tables before each database-backed test."""
    if "pool" in request.fixturenames:
        pool = request.getfixturevalue("pool")
        with pool.connection() as conn:
            conn.execute("DELETE FROM sessions")
            conn.execute("DELETE FROM verification_codes")
            conn.execute("DELETE FROM accounts")
            conn.commit()
    yield
