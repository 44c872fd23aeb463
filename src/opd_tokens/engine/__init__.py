from opd_tokens.engine.allocation import AllocationResult, allocate_token
from opd_tokens.engine.locking import lock_doctor
from opd_tokens.engine.reallocation import CancellationResult, cancel_token
from opd_tokens.engine.relocation import find_next_available_slot, move_token_to_slot
from opd_tokens.engine.schedule import DoctorSchedule, SlotSchedule, list_schedule

__all__ = [
    # Allocation
    "AllocationResult",
    "allocate_token",
    # Cancellation + reallocation
    "CancellationResult",
    "cancel_token",
    # Shared primitives
    "find_next_available_slot",
    "lock_doctor",
    "move_token_to_slot",
    # Read side
    "DoctorSchedule",
    "SlotSchedule",
    "list_schedule",
]
