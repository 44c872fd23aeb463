from __future__ import annotations

from opd_tokens.db.models import TokenSource
from opd_tokens.errors import UnknownSourceError

# Higher number = higher priority
PRIORITY_MAP: dict[TokenSource, int] = {
    TokenSource.EMERGENCY: 5,
    TokenSource.PAID: 4,
    TokenSource.FOLLOW_UP: 3,
    TokenSource.ONLINE: 2,
    TokenSource.WALK_IN: 1,
}

# Admitted unconditionally and never counted against a slot's capacity
CAPACITY_EXEMPT_SOURCES: frozenset[TokenSource] = frozenset({TokenSource.EMERGENCY})


def resolve_source(value: TokenSource | str) -> TokenSource:
    """Parse a raw source value. Unknown sources are rejected, not defaulted."""
    if isinstance(value, TokenSource):
        return value
    if isinstance(value, str):
        normalized = value.strip().upper().replace("-", "_")
        try:
            return TokenSource(normalized)
        except ValueError:
            pass
    raise UnknownSourceError(value)


def get_priority(source: TokenSource | str) -> int:
    return PRIORITY_MAP[resolve_source(source)]


def is_capacity_exempt(source: TokenSource | str) -> bool:
    return resolve_source(source) in CAPACITY_EXEMPT_SOURCES
