from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.db import SlotModel, SlotRepository, TokenModel, TokenRepository, TokenSource
from opd_tokens.engine.locking import lock_doctor
from opd_tokens.engine.relocation import find_next_available_slot, move_token_to_slot
from opd_tokens.errors import (
    NoNextSlotAvailableError,
    NotFoundError,
    OwnerMismatchError,
    SlotFullError,
    SlotFullReason,
)
from opd_tokens.priority import (
    CAPACITY_EXEMPT_SOURCES,
    get_priority,
    is_capacity_exempt,
    resolve_source,
)

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """Outcome of a successful allocation."""

    token: TokenModel
    message: str
    # Set only when a lower priority token was bumped to make room
    bumped_token_id: str | None = None
    bumped_to_slot_id: str | None = None


async def allocate_token(
    session: AsyncSession,
    *,
    doctor_id: str,
    slot_id: str,
    source: TokenSource | str,
) -> AllocationResult:
    """Admit a new token into ``slot_id`` or refuse it.

    Emergency tokens are always admitted and never counted. Other tokens take
    a free place if there is one. In a full slot, the lowest priority active
    token (newest first among equals) is bumped to the doctor's next slot
    with room, provided the incoming token strictly outranks it.

    Every check runs before the first write, so a raised business error
    leaves the database untouched. The caller's transaction scope commits
    all writes together.

    Raises:
        UnknownSourceError, NotFoundError, OwnerMismatchError, SlotFullError,
        NoNextSlotAvailableError, OwnerLockTimeoutError
    """
    source = resolve_source(source)
    priority = get_priority(source)

    await lock_doctor(session, doctor_id)

    slots = SlotRepository(session)
    tokens = TokenRepository(session)

    slot = await slots.get(slot_id)
    if slot is None:
        raise NotFoundError("Slot", slot_id)
    if slot.doctor_id != doctor_id:
        raise OwnerMismatchError(slot_id, doctor_id)

    if is_capacity_exempt(source):
        token = await tokens.create(
            doctor_id=doctor_id, slot_id=slot.id, source=source, priority=priority
        )
        logger.info("Emergency token %s admitted to slot %s", token.id, slot.id)
        return AllocationResult(token=token, message="Emergency token created")

    if slot.has_capacity:
        token = await tokens.create(
            doctor_id=doctor_id, slot_id=slot.id, source=source, priority=priority
        )
        slot.current_count += 1
        await slots.save(slot)
        logger.info(
            "Token %s (%s) admitted to slot %s [%d/%d]",
            token.id,
            source.value,
            slot.id,
            slot.current_count,
            slot.max_capacity,
        )
        return AllocationResult(token=token, message="Token created in requested slot")

    return await _admit_by_bumping(session, slot, source=source, priority=priority)


async def _admit_by_bumping(
    session: AsyncSession,
    slot: SlotModel,
    *,
    source: TokenSource,
    priority: int,
) -> AllocationResult:
    tokens = TokenRepository(session)

    victim = await tokens.lowest_priority_active_in_slot(
        slot.id, exclude_sources=CAPACITY_EXEMPT_SOURCES
    )
    if victim is None:
        raise SlotFullError(slot.id, SlotFullReason.NO_SWAPPABLE_TOKEN)
    if priority <= victim.priority:
        raise SlotFullError(slot.id, SlotFullReason.INSUFFICIENT_PRIORITY)

    next_slot = await find_next_available_slot(session, slot.doctor_id, slot.start_time)
    if next_slot is None:
        raise NoNextSlotAvailableError(slot.id)

    await move_token_to_slot(session, victim, slot, next_slot)

    token = await tokens.create(
        doctor_id=slot.doctor_id, slot_id=slot.id, source=source, priority=priority
    )
    # One token left, one entered
    slot.current_count += 1
    await SlotRepository(session).save(slot)

    logger.info(
        "Token %s (%s) bumped token %s (priority %d) from slot %s to slot %s",
        token.id,
        source.value,
        victim.id,
        victim.priority,
        slot.id,
        next_slot.id,
    )
    return AllocationResult(
        token=token,
        message="Token created by bumping lower priority token to next slot",
        bumped_token_id=victim.id,
        bumped_to_slot_id=next_slot.id,
    )
