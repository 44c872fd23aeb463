from __future__ import annotations

from fastapi.responses import JSONResponse

from opd_tokens.config import settings
from opd_tokens.engine import AllocationResult, CancellationResult, DoctorSchedule
from opd_tokens.errors import (
    NoNextSlotAvailableError,
    NotActiveError,
    NotFoundError,
    OwnerMismatchError,
    RetryableError,
    SlotFullError,
    TokenEngineError,
    UnknownSourceError,
)
from opd_tokens.schemas import (
    AllocationResponse,
    CancellationResponse,
    DoctorResponse,
    DoctorScheduleResponse,
    SlotWithTokensResponse,
    TokenResponse,
)

_STATUS_CODES: dict[type[TokenEngineError], int] = {
    NotFoundError: 404,
    OwnerMismatchError: 400,
    NotActiveError: 400,
    SlotFullError: 409,
    NoNextSlotAvailableError: 409,
    UnknownSourceError: 422,
}


def status_code_for(exc: TokenEngineError) -> int:
    if isinstance(exc, RetryableError):
        return 503
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status_code
    return 400


def error_response(exc: TokenEngineError) -> JSONResponse:
    """Render an engine error as JSON with its code and retryability."""
    headers = None
    if exc.retryable:
        headers = {"Retry-After": str(settings.lock_retry_after_seconds)}
    return JSONResponse(
        status_code=status_code_for(exc),
        content={"detail": str(exc), "code": exc.code, "retryable": exc.retryable},
        headers=headers,
    )


def build_allocation_response(result: AllocationResult) -> AllocationResponse:
    return AllocationResponse(
        token=TokenResponse.model_validate(result.token),
        message=result.message,
        bumped_token_id=result.bumped_token_id,
        bumped_to_slot_id=result.bumped_to_slot_id,
    )


def build_cancellation_response(result: CancellationResult) -> CancellationResponse:
    return CancellationResponse(
        message=result.message,
        token=TokenResponse.model_validate(result.token),
        pulled_token_id=result.pulled_token_id,
        pulled_from_slot_id=result.pulled_from_slot_id,
    )


def build_schedule_response(schedule: DoctorSchedule) -> DoctorScheduleResponse:
    return DoctorScheduleResponse(
        doctor=DoctorResponse.model_validate(schedule.doctor),
        slots=[
            SlotWithTokensResponse(
                id=entry.slot.id,
                doctor_id=entry.slot.doctor_id,
                start_time=entry.slot.start_time,
                end_time=entry.slot.end_time,
                max_capacity=entry.slot.max_capacity,
                current_count=entry.slot.current_count,
                tokens=[TokenResponse.model_validate(t) for t in entry.tokens],
            )
            for entry in schedule.slots
        ],
    )
