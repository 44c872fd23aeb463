"""Demo-day fixture harness.

Wipes every doctor, slot and token, then replays a small mixed day through
the real allocation and cancellation paths. Lives outside the engine; the
engine itself never resets data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.config import settings
from opd_tokens.db import (
    DoctorModel,
    DoctorRepository,
    SlotModel,
    SlotRepository,
    TokenModel,
    TokenSource,
    TokenStatus,
    purge_db_data,
)
from opd_tokens.engine import allocate_token, cancel_token
from opd_tokens.priority import CAPACITY_EXEMPT_SOURCES

logger = logging.getLogger(__name__)

# (doctor index, slot index, source), replayed in order
DEMO_BOOKINGS: list[tuple[int, int, TokenSource]] = [
    (0, 0, TokenSource.WALK_IN),
    (0, 0, TokenSource.ONLINE),
    (0, 0, TokenSource.PAID),
    (1, 1, TokenSource.FOLLOW_UP),
    (1, 1, TokenSource.ONLINE),
    (2, 2, TokenSource.WALK_IN),
    # Emergency into an already full slot
    (0, 0, TokenSource.EMERGENCY),
]


@dataclass
class SimulationSnapshot:
    doctors: Sequence[DoctorModel]
    slots: Sequence[SlotModel]
    tokens: Sequence[TokenModel]


async def simulate_day(session: AsyncSession) -> SimulationSnapshot:
    """Reset all data and run the demo day. Returns the final state."""
    await purge_db_data(session)

    doctor_repo = DoctorRepository(session)
    slot_repo = SlotRepository(session)

    doctors: list[DoctorModel] = []
    slot_grid: list[list[SlotModel]] = []
    for name, department in settings.simulation_doctors:
        doctor = await doctor_repo.create(name=name, department=department)
        doctors.append(doctor)
        slot_grid.append(
            [
                await slot_repo.create(
                    doctor_id=doctor.id,
                    start_time=start,
                    end_time=end,
                    max_capacity=settings.simulation_slot_capacity,
                )
                for start, end in settings.simulation_slot_times
            ]
        )

    for doctor_index, slot_index, source in DEMO_BOOKINGS:
        result = await allocate_token(
            session,
            doctor_id=doctors[doctor_index].id,
            slot_id=slot_grid[doctor_index][slot_index].id,
            source=source,
        )
        logger.debug("Demo booking: %s", result.message)

    to_cancel = await session.scalar(
        select(TokenModel)
        .where(
            TokenModel.status == TokenStatus.ACTIVE,
            TokenModel.source.notin_(list(CAPACITY_EXEMPT_SOURCES)),
        )
        .order_by(TokenModel.created_at, TokenModel.id)
        .limit(1)
    )
    if to_cancel is not None:
        await cancel_token(session, to_cancel.id)

    return SimulationSnapshot(
        doctors=(await session.scalars(select(DoctorModel).order_by(DoctorModel.name))).all(),
        slots=(
            await session.scalars(
                select(SlotModel)
                .order_by(SlotModel.doctor_id, SlotModel.start_time)
                .execution_options(populate_existing=True)
            )
        ).all(),
        tokens=(
            await session.scalars(
                select(TokenModel)
                .order_by(TokenModel.created_at)
                .execution_options(populate_existing=True)
            )
        ).all(),
    )
