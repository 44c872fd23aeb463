from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.db import (
    SlotModel,
    SlotRepository,
    TokenModel,
    TokenRepository,
    TokenStatus,
)
from opd_tokens.engine.locking import lock_doctor
from opd_tokens.engine.relocation import counts_against_capacity, move_token_to_slot
from opd_tokens.errors import NotActiveError, NotFoundError
from opd_tokens.priority import CAPACITY_EXEMPT_SOURCES

logger = logging.getLogger(__name__)


@dataclass
class CancellationResult:
    token: TokenModel
    message: str = "Token cancelled"
    # Set only when a later token was pulled into the freed place
    pulled_token_id: str | None = None
    pulled_from_slot_id: str | None = None


async def cancel_token(session: AsyncSession, token_id: str) -> CancellationResult:
    """Cancel an active token and refill the place it frees.

    After the cancellation the doctor's whole day is swept for the best
    waiting token (highest priority, oldest first). If that token sits in a
    later slot it is pulled forward into the freed slot.

    Raises:
        NotFoundError, NotActiveError, OwnerLockTimeoutError
    """
    tokens = TokenRepository(session)
    slots = SlotRepository(session)

    token = await tokens.get(token_id)
    if token is None:
        raise NotFoundError("Token", token_id)

    await lock_doctor(session, token.doctor_id)
    # Re-read under the lock; a concurrent cancel may have won the race
    token = await tokens.get(token_id)
    if token is None:
        raise NotFoundError("Token", token_id)
    if not token.is_active:
        raise NotActiveError(token.id, token.status.value)

    freed_slot = await slots.get(token.slot_id)

    was_counted = counts_against_capacity(token)
    token.status = TokenStatus.CANCELLED
    await tokens.save(token)

    if freed_slot is None:
        logger.warning("Token %s references missing slot %s", token.id, token.slot_id)
        return CancellationResult(token=token)

    if was_counted and freed_slot.current_count > 0:
        freed_slot.current_count -= 1
        await slots.save(freed_slot)

    logger.info(
        "Token %s cancelled in slot %s [%d/%d]",
        token.id,
        freed_slot.id,
        freed_slot.current_count,
        freed_slot.max_capacity,
    )

    return await _pull_forward(session, token, freed_slot)


async def _pull_forward(
    session: AsyncSession, cancelled: TokenModel, freed_slot: SlotModel
) -> CancellationResult:
    candidate = await TokenRepository(session).highest_priority_active(
        cancelled.doctor_id, exclude_sources=CAPACITY_EXEMPT_SOURCES
    )
    if candidate is None:
        return CancellationResult(token=cancelled)

    from_slot = await SlotRepository(session).get(candidate.slot_id)
    if (
        from_slot is None
        or from_slot.start_time <= freed_slot.start_time
        or from_slot.current_count <= 0
        or not freed_slot.has_capacity
    ):
        return CancellationResult(token=cancelled)

    await move_token_to_slot(session, candidate, from_slot, freed_slot)
    logger.info(
        "Pulled token %s (priority %d) forward into slot %s",
        candidate.id,
        candidate.priority,
        freed_slot.id,
    )
    return CancellationResult(
        token=cancelled,
        pulled_token_id=candidate.id,
        pulled_from_slot_id=from_slot.id,
    )
