from datetime import time

import pytest

from opd_tokens.db import SlotRepository, TokenSource, TokenStatus, get_session
from opd_tokens.engine import list_schedule
from opd_tokens.errors import NotFoundError

from factories import book, cancel, create_doctor_with_slots


async def test_slots_in_time_order_with_their_tokens(db):
    doctor_id, (nine,) = await create_doctor_with_slots([2])
    async with get_session() as session:
        eight = await SlotRepository(session).create(
            doctor_id=doctor_id, start_time=time(8), end_time=time(9), max_capacity=1
        )
    first = await book(doctor_id, nine, TokenSource.ONLINE)
    second = await book(doctor_id, nine, TokenSource.PAID)
    early = await book(doctor_id, eight.id, TokenSource.WALK_IN)

    async with get_session() as session:
        schedule = await list_schedule(session, doctor_id)

    assert schedule.doctor.id == doctor_id
    assert [entry.slot.id for entry in schedule.slots] == [eight.id, nine]
    assert [t.id for t in schedule.slots[0].tokens] == [early.token.id]
    assert [t.id for t in schedule.slots[1].tokens] == [
        first.token.id,
        second.token.id,
    ]


async def test_cancelled_tokens_stay_visible(db):
    doctor_id, (slot_id,) = await create_doctor_with_slots([1])
    booked = await book(doctor_id, slot_id, TokenSource.ONLINE)
    await cancel(booked.token.id)

    async with get_session() as session:
        schedule = await list_schedule(session, doctor_id)

    (entry,) = schedule.slots
    assert entry.slot.current_count == 0
    assert [t.status for t in entry.tokens] == [TokenStatus.CANCELLED]


async def test_empty_day(db):
    doctor_id, _ = await create_doctor_with_slots([])

    async with get_session() as session:
        schedule = await list_schedule(session, doctor_id)

    assert schedule.slots == []


async def test_unknown_doctor(db):
    async with get_session() as session:
        with pytest.raises(NotFoundError):
            await list_schedule(session, "missing")
