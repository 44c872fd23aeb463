import pytest

from opd_tokens.db import TokenSource, TokenStatus
from opd_tokens.errors import NotActiveError, NotFoundError

from factories import (
    assert_invariants,
    book,
    cancel,
    create_doctor_with_slots,
    load_slot,
    load_token,
    snapshot,
)


async def test_cancel_frees_capacity(db):
    doctor_id, (slot_id,) = await create_doctor_with_slots([2])
    first = await book(doctor_id, slot_id, TokenSource.ONLINE)
    await book(doctor_id, slot_id, TokenSource.ONLINE)

    result = await cancel(first.token.id)

    assert result.message == "Token cancelled"
    assert result.token.status == TokenStatus.CANCELLED
    assert result.pulled_token_id is None
    assert (await load_slot(slot_id)).current_count == 1
    await assert_invariants()


async def test_cancel_pulls_best_later_token_forward(db):
    doctor_id, (early, late) = await create_doctor_with_slots([1, 1])
    walk_in = await book(doctor_id, early, TokenSource.WALK_IN)
    paid = await book(doctor_id, late, TokenSource.PAID)

    result = await cancel(walk_in.token.id)

    assert result.pulled_token_id == paid.token.id
    assert result.pulled_from_slot_id == late
    assert (await load_token(paid.token.id)).slot_id == early
    assert (await load_slot(early)).current_count == 1
    assert (await load_slot(late)).current_count == 0
    await assert_invariants()


async def test_best_candidate_in_earlier_slot_blocks_pull_forward(db):
    doctor_id, (nine, ten, eleven) = await create_doctor_with_slots([1, 1, 1])
    await book(doctor_id, nine, TokenSource.PAID)
    walk_in = await book(doctor_id, ten, TokenSource.WALK_IN)
    online = await book(doctor_id, eleven, TokenSource.ONLINE)

    result = await cancel(walk_in.token.id)

    # The whole day is swept; its best token sits at 09:00, so nothing moves
    assert result.pulled_token_id is None
    assert (await load_token(online.token.id)).slot_id == eleven
    assert (await load_slot(ten)).current_count == 0
    await assert_invariants()


async def test_ties_pull_the_oldest_token(db):
    doctor_id, (nine, ten, eleven) = await create_doctor_with_slots([1, 1, 1])
    walk_in = await book(doctor_id, nine, TokenSource.WALK_IN)
    older = await book(doctor_id, ten, TokenSource.FOLLOW_UP)
    await book(doctor_id, eleven, TokenSource.FOLLOW_UP)

    result = await cancel(walk_in.token.id)

    assert result.pulled_token_id == older.token.id
    assert result.pulled_from_slot_id == ten
    await assert_invariants()


async def test_candidate_in_freed_slot_stays_put(db):
    doctor_id, (nine, ten) = await create_doctor_with_slots([2, 1])
    first = await book(doctor_id, nine, TokenSource.WALK_IN)
    paid = await book(doctor_id, nine, TokenSource.PAID)
    later = await book(doctor_id, ten, TokenSource.ONLINE)

    result = await cancel(first.token.id)

    assert result.pulled_token_id is None
    assert (await load_token(paid.token.id)).slot_id == nine
    assert (await load_token(later.token.id)).slot_id == ten
    await assert_invariants()


async def test_emergency_tokens_are_never_pulled(db):
    doctor_id, (nine, ten) = await create_doctor_with_slots([1, 1])
    walk_in = await book(doctor_id, nine, TokenSource.WALK_IN)
    emergency = await book(doctor_id, ten, TokenSource.EMERGENCY)

    result = await cancel(walk_in.token.id)

    assert result.pulled_token_id is None
    assert (await load_token(emergency.token.id)).slot_id == ten
    await assert_invariants()


async def test_cancelling_emergency_leaves_counters_alone(db):
    doctor_id, (slot_id,) = await create_doctor_with_slots([1])
    await book(doctor_id, slot_id, TokenSource.ONLINE)
    emergency = await book(doctor_id, slot_id, TokenSource.EMERGENCY)

    await cancel(emergency.token.id)

    assert (await load_slot(slot_id)).current_count == 1
    await assert_invariants()


async def test_cancel_twice_fails_without_changes(db):
    doctor_id, (nine, ten) = await create_doctor_with_slots([1, 1])
    walk_in = await book(doctor_id, nine, TokenSource.WALK_IN)
    await book(doctor_id, ten, TokenSource.PAID)
    await cancel(walk_in.token.id)
    before = await snapshot()

    with pytest.raises(NotActiveError):
        await cancel(walk_in.token.id)

    assert await snapshot() == before
    await assert_invariants()


async def test_cancel_unknown_token(db):
    with pytest.raises(NotFoundError) as exc_info:
        await cancel("missing")

    assert exc_info.value.kind == "Token"


async def test_terminal_status_is_final(db):
    doctor_id, (slot_id,) = await create_doctor_with_slots([1])
    booked = await book(doctor_id, slot_id, TokenSource.ONLINE)
    cancelled = (await cancel(booked.token.id)).token

    with pytest.raises(ValueError):
        cancelled.status = TokenStatus.ACTIVE
    with pytest.raises(ValueError):
        cancelled.status = TokenStatus.NO_SHOW


async def test_bump_then_cancel_keeps_invariants(db):
    doctor_id, (nine, ten, eleven) = await create_doctor_with_slots([2, 1, 1])
    tokens = [
        await book(doctor_id, nine, TokenSource.WALK_IN),
        await book(doctor_id, nine, TokenSource.ONLINE),
        await book(doctor_id, nine, TokenSource.PAID),  # bumps WALK_IN to 10:00
        await book(doctor_id, nine, TokenSource.FOLLOW_UP),  # bumps ONLINE to 11:00
        await book(doctor_id, ten, TokenSource.EMERGENCY),
    ]
    await assert_invariants()

    await cancel(tokens[2].token.id)  # PAID leaves 09:00
    await assert_invariants()
    await cancel(tokens[0].token.id)
    await assert_invariants()

    # FOLLOW_UP is the best waiting token but already sits at 09:00
    assert (await load_slot(nine)).current_count == 1
    assert (await load_slot(ten)).current_count == 0
