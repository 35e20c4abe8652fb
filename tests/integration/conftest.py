import os
import uuid
from collections.abc import Generator

import pytest
from psycopg import sql

from grading_client.config.settings import Settings
from grading_client.database.connection import close_pool, get_connection, init_pool
from grading_client.storage.postgres_adapter import PostgresStorage


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "grading_client_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute("SELECT 1")
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def postgres_storage(integration_pool: None) -> Generator[PostgresStorage, None, None]:
    """A PostgresStorage on a throwaway table, dropped after the test."""
    table = f"client_storage_test_{uuid.uuid4().hex[:8]}"
    storage = PostgresStorage(table=table)
    storage.ensure_schema()
    try:
        yield storage
    finally:
        with get_connection() as conn:
            conn.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(table)))
