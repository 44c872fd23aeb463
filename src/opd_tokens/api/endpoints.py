from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.api.helpers import (
    build_allocation_response,
    build_cancellation_response,
    build_schedule_response,
)
from opd_tokens.db import DoctorRepository, SlotRepository, TokenSource
from opd_tokens.engine import allocate_token, cancel_token, list_schedule, lock_doctor
from opd_tokens.schemas import (
    AllocationResponse,
    CancellationResponse,
    DoctorCreateRequest,
    DoctorResponse,
    DoctorScheduleResponse,
    SlotCreateRequest,
    SlotResponse,
)

# Engine errors (TokenEngineError) propagate out of these functions; the app's
# exception handler turns them into JSON responses after the session rolls back.


async def create_doctor_core(
    session: AsyncSession, payload: DoctorCreateRequest
) -> DoctorResponse:
    doctor = await DoctorRepository(session).create(
        name=payload.name, department=payload.department
    )
    return DoctorResponse.model_validate(doctor)


async def list_doctors_core(session: AsyncSession) -> list[DoctorResponse]:
    doctors = await DoctorRepository(session).list_all()
    return [DoctorResponse.model_validate(d) for d in doctors]


async def create_slot_core(
    session: AsyncSession, *, doctor_id: str, payload: SlotCreateRequest
) -> SlotResponse:
    """Add a slot to a doctor's day. A second slot at the same start time is rejected.

    Runs under the doctor lock so concurrent creations see each other.
    """
    await lock_doctor(session, doctor_id)

    slots = SlotRepository(session)
    existing = await slots.list_for_doctor(doctor_id)
    if any(slot.start_time == payload.start_time for slot in existing):
        raise HTTPException(
            status_code=409,
            detail=f"Doctor {doctor_id} already has a slot starting at "
            f"{payload.start_time.isoformat('minutes')}",
        )

    slot = await slots.create(
        doctor_id=doctor_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        max_capacity=payload.max_capacity,
    )
    return SlotResponse.model_validate(slot)


async def allocate_token_core(
    session: AsyncSession,
    *,
    doctor_id: str,
    slot_id: str,
    source: TokenSource,
) -> AllocationResponse:
    result = await allocate_token(
        session, doctor_id=doctor_id, slot_id=slot_id, source=source
    )
    return build_allocation_response(result)


async def cancel_token_core(
    session: AsyncSession, *, token_id: str
) -> CancellationResponse:
    result = await cancel_token(session, token_id)
    return build_cancellation_response(result)


async def get_doctor_schedule_core(
    session: AsyncSession, *, doctor_id: str
) -> DoctorScheduleResponse:
    schedule = await list_schedule(session, doctor_id)
    return build_schedule_response(schedule)
