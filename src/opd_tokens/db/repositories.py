from __future__ import annotations

from datetime import time
from typing import Collection, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opd_tokens.db.models import (
    DoctorModel,
    SlotModel,
    TokenModel,
    TokenSource,
    TokenStatus,
)


class DoctorRepository:
    """Doctor lookups and the per-doctor row lock."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, doctor_id: str) -> DoctorModel | None:
        return await self.session.get(DoctorModel, doctor_id)

    async def lock(self, doctor_id: str) -> DoctorModel | None:
        """SELECT ... FOR UPDATE on the doctor row.

        Held until the surrounding transaction ends. Every slot and token of
        the doctor is only mutated while this lock is held.
        """
        result = await self.session.execute(
            select(DoctorModel)
            .where(DoctorModel.id == doctor_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> Sequence[DoctorModel]:
        result = await self.session.execute(
            select(DoctorModel).order_by(DoctorModel.name, DoctorModel.id)
        )
        return result.scalars().all()

    async def create(self, *, name: str, department: str) -> DoctorModel:
        doctor = DoctorModel(name=name, department=department)
        self.session.add(doctor)
        await self.session.flush()
        return doctor


class SlotRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, slot_id: str) -> SlotModel | None:
        """Fetch a slot, always re-reading the row from the database."""
        result = await self.session.execute(
            select(SlotModel)
            .where(SlotModel.id == slot_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_doctor(self, doctor_id: str) -> Sequence[SlotModel]:
        """All slots of a doctor in start-time order."""
        result = await self.session.execute(
            select(SlotModel)
            .where(SlotModel.doctor_id == doctor_id)
            .order_by(SlotModel.start_time, SlotModel.id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def find_next_available(
        self, doctor_id: str, after_start_time: time
    ) -> SlotModel | None:
        """Earliest slot starting strictly after ``after_start_time`` with room left."""
        result = await self.session.execute(
            select(SlotModel)
            .where(
                SlotModel.doctor_id == doctor_id,
                SlotModel.start_time > after_start_time,
                SlotModel.current_count < SlotModel.max_capacity,
            )
            .order_by(SlotModel.start_time, SlotModel.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        doctor_id: str,
        start_time: time,
        end_time: time,
        max_capacity: int,
    ) -> SlotModel:
        slot = SlotModel(
            doctor_id=doctor_id,
            start_time=start_time,
            end_time=end_time,
            max_capacity=max_capacity,
            current_count=0,
        )
        self.session.add(slot)
        await self.session.flush()
        return slot

    async def save(self, *slots: SlotModel) -> None:
        self.session.add_all(slots)
        await self.session.flush()


class TokenRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, token_id: str) -> TokenModel | None:
        result = await self.session.execute(
            select(TokenModel)
            .where(TokenModel.id == token_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        doctor_id: str,
        slot_id: str,
        source: TokenSource,
        priority: int,
    ) -> TokenModel:
        token = TokenModel(
            doctor_id=doctor_id,
            slot_id=slot_id,
            source=source,
            priority=priority,
            status=TokenStatus.ACTIVE,
        )
        self.session.add(token)
        await self.session.flush()
        return token

    async def save(self, *tokens: TokenModel) -> None:
        self.session.add_all(tokens)
        await self.session.flush()

    async def list_for_doctor(
        self,
        doctor_id: str,
        *,
        status: TokenStatus | None = None,
        exclude_sources: Collection[TokenSource] = (),
        slot_id: str | None = None,
    ) -> Sequence[TokenModel]:
        """Tokens of a doctor in creation order, optionally filtered."""
        query = select(TokenModel).where(TokenModel.doctor_id == doctor_id)
        if status is not None:
            query = query.where(TokenModel.status == status)
        if exclude_sources:
            query = query.where(TokenModel.source.notin_(list(exclude_sources)))
        if slot_id is not None:
            query = query.where(TokenModel.slot_id == slot_id)
        result = await self.session.execute(
            query.order_by(TokenModel.created_at, TokenModel.id).execution_options(
                populate_existing=True
            )
        )
        return result.scalars().all()

    async def lowest_priority_active_in_slot(
        self, slot_id: str, *, exclude_sources: Collection[TokenSource] = ()
    ) -> TokenModel | None:
        """Lowest priority ACTIVE token in a slot; the newest one wins ties."""
        query = select(TokenModel).where(
            TokenModel.slot_id == slot_id,
            TokenModel.status == TokenStatus.ACTIVE,
        )
        if exclude_sources:
            query = query.where(TokenModel.source.notin_(list(exclude_sources)))
        result = await self.session.execute(
            query.order_by(
                TokenModel.priority.asc(),
                TokenModel.created_at.desc(),
                TokenModel.id.desc(),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def highest_priority_active(
        self,
        doctor_id: str,
        *,
        exclude_sources: Collection[TokenSource] = (),
        slot_id: str | None = None,
    ) -> TokenModel | None:
        """Highest priority ACTIVE token of a doctor; the oldest one wins ties."""
        query = select(TokenModel).where(
            TokenModel.doctor_id == doctor_id,
            TokenModel.status == TokenStatus.ACTIVE,
        )
        if exclude_sources:
            query = query.where(TokenModel.source.notin_(list(exclude_sources)))
        if slot_id is not None:
            query = query.where(TokenModel.slot_id == slot_id)
        result = await self.session.execute(
            query.order_by(
                TokenModel.priority.desc(),
                TokenModel.created_at.asc(),
                TokenModel.id.asc(),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
