"""
In-memory DuckDB fixtures for integration tests.
"""
import pytest
from duckdb_async import Database


@pytest.fixture
async def mem_db():
    """Open an in-memory database with a small test table"""
    db = await Database.create(':memory:')

    await db.exec("""
    CREATE TABLE test_table (
        id INTEGER PRIMARY KEY,
        name VARCHAR NOT NULL UNIQUE,
        value INTEGER NOT NULL
    )
    """)
    await db.exec("""
    INSERT INTO test_table VALUES
    (1, 'Alice', 10),
    (2, 'Bob', 20),
    (3, 'Charlie', 30)
    """)

    yield db
    if db.is_ready:
        await db.close()


@pytest.fixture
async def mem_conn(mem_db):
    """Connection on the in-memory test database."""
    cn = await mem_db.connect()
    yield cn
    if cn.is_ready:
        await cn.close()
