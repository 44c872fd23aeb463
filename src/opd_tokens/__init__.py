from __future__ import annotations

__version__ = "0.1.0"

_EXPORTS: dict[str, tuple[str, str]] = {
    # Config
    "settings": ("opd_tokens.config", "settings"),
    # DB - Enums
    "TokenSource": ("opd_tokens.db", "TokenSource"),
    "TokenStatus": ("opd_tokens.db", "TokenStatus"),
    # DB - Models
    "DoctorModel": ("opd_tokens.db", "DoctorModel"),
    "SlotModel": ("opd_tokens.db", "SlotModel"),
    "TokenModel": ("opd_tokens.db", "TokenModel"),
    # DB - Connection
    "init_db": ("opd_tokens.db", "init_db"),
    "get_session": ("opd_tokens.db", "get_session"),
    # Priority
    "get_priority": ("opd_tokens.priority", "get_priority"),
    "is_capacity_exempt": ("opd_tokens.priority", "is_capacity_exempt"),
    "resolve_source": ("opd_tokens.priority", "resolve_source"),
    # Engine
    "allocate_token": ("opd_tokens.engine", "allocate_token"),
    "cancel_token": ("opd_tokens.engine", "cancel_token"),
    "list_schedule": ("opd_tokens.engine", "list_schedule"),
    "AllocationResult": ("opd_tokens.engine", "AllocationResult"),
    "CancellationResult": ("opd_tokens.engine", "CancellationResult"),
    # Errors
    "TokenEngineError": ("opd_tokens.errors", "TokenEngineError"),
    "BusinessRuleError": ("opd_tokens.errors", "BusinessRuleError"),
    "RetryableError": ("opd_tokens.errors", "RetryableError"),
}

__all__ = ["__version__", *_EXPORTS.keys()]


def __getattr__(name: str):
    if name not in _EXPORTS:
        raise AttributeError(f"module 'opd_tokens' has no attribute {name!r}")
    module_name, attr_name = _EXPORTS[name]
    module = __import__(module_name, fromlist=[attr_name])
    return getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(__all__)
