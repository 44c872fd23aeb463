from __future__ import annotations

import asyncio
import logging

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from opd_tokens.config import settings
from opd_tokens.db import DoctorModel, DoctorRepository
from opd_tokens.errors import (
    NotFoundError,
    OwnerLockTimeoutError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for lock_not_available (raised when lock_timeout expires)
_LOCK_NOT_AVAILABLE = "55P03"

# Per-doctor locks for backends without row locks (SQLite ignores FOR UPDATE).
# asyncio locks belong to one event loop, so they are kept per loop.
_process_locks: dict[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = {}
_HELD_LOCKS_KEY = "opd_tokens.held_doctor_locks"
_RELEASE_HOOK_KEY = "opd_tokens.release_hook"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _get_lock(doctor_id: str) -> asyncio.Lock:
    for loop in [loop for loop in _process_locks if loop.is_closed()]:
        del _process_locks[loop]
    locks = _process_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(doctor_id)
    if lock is None:
        lock = asyncio.Lock()
        locks[doctor_id] = lock
    return lock


def _release_held_locks(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    held: dict[str, asyncio.Lock] = session.info.get(_HELD_LOCKS_KEY, {})
    for lock in held.values():
        lock.release()
    held.clear()


async def _acquire_process_lock(session: AsyncSession, doctor_id: str) -> None:
    """Hold an in-process lock on the doctor until the session's transaction ends.

    Only serialises requests within one process; multi-process deployments
    need PostgreSQL.
    """
    held: dict[str, asyncio.Lock] = session.info.setdefault(_HELD_LOCKS_KEY, {})
    if doctor_id in held:
        return

    # Begin the transaction first so its end always releases the lock
    await session.connection()
    if not session.info.get(_RELEASE_HOOK_KEY):
        event.listen(session.sync_session, "after_transaction_end", _release_held_locks)
        session.info[_RELEASE_HOOK_KEY] = True

    lock = _get_lock(doctor_id)
    try:
        await asyncio.wait_for(lock.acquire(), timeout=settings.lock_timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.warning("Lock wait timed out for doctor %s", doctor_id)
        raise OwnerLockTimeoutError(doctor_id) from None
    held[doctor_id] = lock


async def lock_doctor(session: AsyncSession, doctor_id: str) -> DoctorModel:
    """Take the doctor's schedule lock for the rest of the transaction.

    Allocation and cancellation both read slot counters, compare them to
    capacity and write them back; two such sequences for the same doctor
    must never interleave. Doctors do not block each other.

    On PostgreSQL this is a row lock on the doctor bounded by
    ``lock_timeout``. Other backends get a per-process asyncio lock with the
    same timeout, released when the transaction commits or rolls back.
    Taking the lock again inside the same transaction is a no-op.

    Raises:
        NotFoundError: the doctor does not exist.
        OwnerLockTimeoutError: the lock was not granted within
            ``settings.lock_timeout_ms``.
        StorageUnavailableError: the database could not be reached.
    """
    bind = session.bind
    is_postgres = bind is not None and bind.dialect.name == "postgresql"
    try:
        if is_postgres:
            # SET LOCAL does not accept bind parameters
            await session.execute(
                text(f"SET LOCAL lock_timeout = '{int(settings.lock_timeout_ms)}ms'")
            )
        else:
            await _acquire_process_lock(session, doctor_id)
        doctor = await DoctorRepository(session).lock(doctor_id)
    except DBAPIError as exc:
        if _sqlstate(exc) == _LOCK_NOT_AVAILABLE:
            logger.warning("Lock wait timed out for doctor %s", doctor_id)
            raise OwnerLockTimeoutError(doctor_id) from exc
        if exc.connection_invalidated:
            raise StorageUnavailableError(str(exc.orig)) from exc
        raise

    if doctor is None:
        raise NotFoundError("Doctor", doctor_id)
    return doctor
