from __future__ import annotations

from datetime import datetime, time

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from opd_tokens.db import TokenSource, TokenStatus
from opd_tokens.errors import UnknownSourceError
from opd_tokens.priority import resolve_source

# =============================================================================
# Request Schemas
# =============================================================================


class DoctorCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Doctor's display name")
    department: str = Field(..., min_length=1, description="Department, e.g. 'General'")

    @field_validator("name", "department")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class SlotCreateRequest(BaseModel):
    start_time: time = Field(
        ...,
        validation_alias=AliasChoices("start_time", "startTime"),
        description="Slot start as time of day, e.g. '09:00'",
    )
    end_time: time = Field(
        ...,
        validation_alias=AliasChoices("end_time", "endTime"),
        description="Slot end as time of day, e.g. '10:00'",
    )
    max_capacity: int = Field(
        ...,
        ge=1,
        validation_alias=AliasChoices("max_capacity", "maxCapacity"),
        description="Number of non-emergency tokens the slot can hold",
    )

    @model_validator(mode="after")
    def check_time_order(self) -> "SlotCreateRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class EmergencyTokenRequest(BaseModel):
    """Emergency booking; always admitted."""

    doctor_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("doctor_id", "doctorId")
    )
    slot_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("slot_id", "slotId")
    )


class TokenCreateRequest(EmergencyTokenRequest):
    source: TokenSource = Field(
        ..., description="ONLINE, WALK_IN, PAID, FOLLOW_UP or EMERGENCY"
    )

    @field_validator("source", mode="before")
    @classmethod
    def normalize_source(cls, value: object) -> TokenSource:
        try:
            return resolve_source(value)  # type: ignore[arg-type]
        except UnknownSourceError as exc:
            raise ValueError(str(exc)) from exc


# =============================================================================
# Response Schemas
# =============================================================================


class DoctorResponse(BaseModel):
    id: str
    name: str
    department: str

    model_config = {"from_attributes": True}


class SlotResponse(BaseModel):
    id: str
    doctor_id: str
    start_time: time
    end_time: time
    max_capacity: int
    current_count: int

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    id: str
    doctor_id: str
    slot_id: str
    source: TokenSource
    priority: int
    status: TokenStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class AllocationResponse(BaseModel):
    token: TokenResponse
    message: str
    bumped_token_id: str | None = Field(
        None, description="Token moved to a later slot to make room, if any"
    )
    bumped_to_slot_id: str | None = None


class CancellationResponse(BaseModel):
    message: str
    token: TokenResponse
    pulled_token_id: str | None = Field(
        None, description="Later token pulled forward into the freed place, if any"
    )
    pulled_from_slot_id: str | None = None


class SlotWithTokensResponse(SlotResponse):
    tokens: list[TokenResponse] = Field(default_factory=list)


class DoctorScheduleResponse(BaseModel):
    doctor: DoctorResponse
    slots: list[SlotWithTokensResponse]


class SimulationResponse(BaseModel):
    doctors: list[DoctorResponse]
    slots: list[SlotResponse]
    tokens: list[TokenResponse]
