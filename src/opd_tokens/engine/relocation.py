from __future__ import annotations

import logging
from datetime import time

from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.db import SlotModel, SlotRepository, TokenModel, TokenRepository
from opd_tokens.priority import is_capacity_exempt

logger = logging.getLogger(__name__)


async def find_next_available_slot(
    session: AsyncSession, doctor_id: str, after_start_time: time
) -> SlotModel | None:
    """Find the doctor's first slot after ``after_start_time`` that has room."""
    return await SlotRepository(session).find_next_available(
        doctor_id, after_start_time
    )


def counts_against_capacity(token: TokenModel) -> bool:
    return token.is_active and not is_capacity_exempt(token.source)


async def move_token_to_slot(
    session: AsyncSession,
    token: TokenModel,
    from_slot: SlotModel,
    to_slot: SlotModel,
) -> None:
    """Move a token between slots, keeping both occupancy counters in step.

    This is the only place a token's slot changes. Emergency and non-active
    tokens move without touching either counter. The caller is responsible
    for checking that ``to_slot`` has room.
    """
    if counts_against_capacity(token):
        if from_slot.current_count > 0:
            from_slot.current_count -= 1
        to_slot.current_count += 1
    token.slot_id = to_slot.id

    await SlotRepository(session).save(from_slot, to_slot)
    await TokenRepository(session).save(token)
    logger.info(
        "Moved token %s from slot %s (%s) to slot %s (%s)",
        token.id,
        from_slot.id,
        from_slot.start_time.isoformat("minutes"),
        to_slot.id,
        to_slot.start_time.isoformat("minutes"),
    )
