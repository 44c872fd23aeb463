"""Error taxonomy for token allocation.

Business rule errors mean the request was refused and nothing changed; they
are never worth retrying. Retryable errors come from the infrastructure
(lock waits, lost connections) and say nothing about the request itself.
"""

from __future__ import annotations

from enum import Enum


class TokenEngineError(Exception):
    """Base class for every error raised by the allocation engine."""

    code: str = "error"
    retryable: bool = False


# =============================================================================
# Business rule errors (non-retryable, zero state change)
# =============================================================================


class BusinessRuleError(TokenEngineError):
    pass


class NotFoundError(BusinessRuleError):
    code = "not_found"

    def __init__(self, kind: str, ident: str):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class OwnerMismatchError(BusinessRuleError):
    code = "owner_mismatch"

    def __init__(self, slot_id: str, doctor_id: str):
        self.slot_id = slot_id
        self.doctor_id = doctor_id
        super().__init__(f"Slot {slot_id} does not belong to doctor {doctor_id}")


class NotActiveError(BusinessRuleError):
    code = "not_active"

    def __init__(self, token_id: str, status: str):
        self.token_id = token_id
        self.status = status
        super().__init__(f"Token {token_id} is not active (status: {status})")


class SlotFullReason(str, Enum):
    NO_SWAPPABLE_TOKEN = "no_swappable_token"
    INSUFFICIENT_PRIORITY = "insufficient_priority"


class SlotFullError(BusinessRuleError):
    code = "slot_full"

    _MESSAGES = {
        SlotFullReason.NO_SWAPPABLE_TOKEN: "Slot is full and no swappable token found",
        SlotFullReason.INSUFFICIENT_PRIORITY: (
            "Slot full. Incoming token has lower or equal priority."
        ),
    }

    def __init__(self, slot_id: str, reason: SlotFullReason):
        self.slot_id = slot_id
        self.reason = reason
        super().__init__(self._MESSAGES[reason])


class NoNextSlotAvailableError(BusinessRuleError):
    code = "no_next_slot"

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__("Slot full. No next slot available for reallocation.")


class UnknownSourceError(BusinessRuleError):
    code = "unknown_source"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown token source: {value!r}")


# =============================================================================
# Infrastructure errors (retryable)
# =============================================================================


class RetryableError(TokenEngineError):
    retryable = True


class OwnerLockTimeoutError(RetryableError):
    code = "lock_timeout"

    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__(
            f"Timed out waiting for doctor {doctor_id}'s schedule lock; retry later"
        )


class StorageUnavailableError(RetryableError):
    code = "storage_unavailable"
