from opd_tokens.db.models import (
    Base,
    TokenSource,
    TokenStatus,
    # ORM Models
    DoctorModel,
    SlotModel,
    TokenModel,
    # Helpers
    generate_id,
    monotonic_utcnow,
    utcnow,
)

# Connection
from opd_tokens.db.connection import (
    # Session
    async_session_maker,
    engine,
    get_session,
    # Setup
    drop_db,
    init_db,
    purge_db_data,
    reset_db,
)

# Repositories
from opd_tokens.db.repositories import (
    DoctorRepository,
    SlotRepository,
    TokenRepository,
)

__all__ = [
    # Base
    "Base",
    # Enums
    "TokenSource",
    "TokenStatus",
    # ORM Models
    "DoctorModel",
    "SlotModel",
    "TokenModel",
    # Helpers
    "generate_id",
    "monotonic_utcnow",
    "utcnow",
    # Session
    "engine",
    "async_session_maker",
    "get_session",
    # Setup
    "init_db",
    "drop_db",
    "reset_db",
    "purge_db_data",
    # Repositories
    "DoctorRepository",
    "SlotRepository",
    "TokenRepository",
]
