from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.db import (
    DoctorModel,
    DoctorRepository,
    SlotModel,
    SlotRepository,
    TokenModel,
    TokenRepository,
)
from opd_tokens.errors import NotFoundError


@dataclass
class SlotSchedule:
    slot: SlotModel
    tokens: list[TokenModel] = field(default_factory=list)


@dataclass
class DoctorSchedule:
    doctor: DoctorModel
    slots: list[SlotSchedule] = field(default_factory=list)


async def list_schedule(session: AsyncSession, doctor_id: str) -> DoctorSchedule:
    """A doctor's day: slots by start time, each with its tokens by creation time.

    Tokens of every status are included so cancelled ones stay visible.
    """
    doctor = await DoctorRepository(session).get(doctor_id)
    if doctor is None:
        raise NotFoundError("Doctor", doctor_id)

    slots = await SlotRepository(session).list_for_doctor(doctor_id)
    tokens = await TokenRepository(session).list_for_doctor(doctor_id)

    tokens_by_slot: dict[str, list[TokenModel]] = defaultdict(list)
    for token in tokens:
        tokens_by_slot[token.slot_id].append(token)

    return DoctorSchedule(
        doctor=doctor,
        slots=[SlotSchedule(slot=slot, tokens=tokens_by_slot[slot.id]) for slot in slots],
    )
