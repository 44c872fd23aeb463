from __future__ import annotations

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from opd_tokens.db import Base
from opd_tokens.db import connection


def _enable_foreign_keys(engine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    _enable_foreign_keys(engine)
    await _create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(db_engine, monkeypatch):
    """Point get_session() at the test database. Request this in every DB test."""
    maker = async_sessionmaker(db_engine, expire_on_commit=False)
    monkeypatch.setattr(connection, "async_session_maker", maker)
    return maker


@pytest_asyncio.fixture
async def file_db(tmp_path, monkeypatch):
    """File-backed SQLite with a real connection pool.

    Every session gets its own connection, so concurrent requests interleave
    the way they do against a server database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'opd.db'}")
    _enable_foreign_keys(engine)
    await _create_schema(engine)
    maker = async_sessionmaker(engine, expire_on_commit=False)
    monkeypatch.setattr(connection, "async_session_maker", maker)
    yield maker
    await engine.dispose()
