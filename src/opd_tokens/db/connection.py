import asyncio
import subprocess
import sys
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.ext.asyncio import async_sessionmaker  # type: ignore[attr-defined]

from opd_tokens.config import settings
from opd_tokens.db.models import Base, DoctorModel, SlotModel, TokenModel


def _engine_kwargs() -> dict[str, Any]:
    if not settings.is_postgres:
        return {}
    # Disable prepared statements for connection poolers (PgBouncer, Supavisor)
    # that run in transaction mode
    return {
        "connect_args": {"statement_cache_size": 0},
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_pool_max_overflow,
    }


engine = create_async_engine(settings.database_url, echo=False, **_engine_kwargs())
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get a database session with automatic commit/rollback.

    Every allocation or cancellation runs inside one of these scopes: the
    doctor's row lock, the counter updates and the token writes commit
    together, and any error rolls all of them back.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# =============================================================================
# Database Initialization
# =============================================================================


async def init_db():
    """Initialize database schema."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Drop all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def reset_db():
    """Drop and recreate all tables."""
    await drop_db()
    await init_db()


async def purge_db_data(session: AsyncSession) -> None:
    """Delete every token, slot and doctor, keeping the schema.

    Children go first so foreign keys never dangle mid-purge.
    """
    await session.execute(delete(TokenModel))
    await session.execute(delete(SlotModel))
    await session.execute(delete(DoctorModel))
    await session.flush()


async def _purge() -> None:
    async with get_session() as session:
        await purge_db_data(session)


# =============================================================================
# CLI entry point for `python -m opd_tokens.db`
# =============================================================================


def _run_cli():
    command = sys.argv[1] if len(sys.argv) > 1 else "init"

    if command == "init":
        print("Initializing database with Alembic migrations...")
        print("Running: alembic upgrade head")
        result = subprocess.run(["alembic", "upgrade", "head"], capture_output=False)
        if result.returncode == 0:
            print("✓ Database initialized!")
        else:
            print("✗ Database initialization failed")
            sys.exit(1)

    elif command == "reset":
        print("WARNING: This will drop all tables and recreate them!")
        print("Press Ctrl+C to cancel, or wait 3 seconds to continue...")
        try:
            time.sleep(3)
        except KeyboardInterrupt:
            print("\nCancelled.")
            sys.exit(0)

        print("\nDropping all tables...")
        asyncio.run(drop_db())
        print("Running: alembic upgrade head")
        result = subprocess.run(["alembic", "upgrade", "head"], capture_output=False)
        if result.returncode != 0:
            print("✗ Alembic migration failed")
            sys.exit(1)
        print("✓ Database reset complete!")

    elif command == "purge":
        print("WARNING: This will delete ALL doctors, slots and tokens!")
        print("Press Ctrl+C to cancel, or wait 3 seconds to continue...")
        try:
            time.sleep(3)
        except KeyboardInterrupt:
            print("\nCancelled.")
            sys.exit(0)

        asyncio.run(_purge())
        print("✓ Database data purged!")

    else:
        print(f"Unknown command: {command}")
        print("\nAvailable commands:")
        print("  init   - Run Alembic migrations")
        print("  reset  - Drop and recreate all tables (WARNING: destructive)")
        print("  purge  - Delete all doctors, slots and tokens")
        sys.exit(1)


if __name__ == "__main__":
    _run_cli()
