"""create_doctors_slots_tokens

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-19 09:00:00.000000

Initial schema: doctors own slots; tokens reference both. Occupancy bounds
are enforced by CHECK constraints so a bad counter update fails loudly.
"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "a7c1e2d3f4b5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS doctors (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            department VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS slots (
            id VARCHAR(64) PRIMARY KEY,
            doctor_id VARCHAR(64) NOT NULL
                REFERENCES doctors(id) ON DELETE RESTRICT,
            start_time TIME NOT NULL,
            end_time TIME NOT NULL,
            max_capacity INTEGER NOT NULL,
            current_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT ck_slots_max_capacity_positive CHECK (max_capacity > 0),
            CONSTRAINT ck_slots_current_count_nonneg CHECK (current_count >= 0),
            CONSTRAINT ck_slots_current_count_le_max CHECK (current_count <= max_capacity),
            CONSTRAINT ck_slots_time_order CHECK (end_time > start_time),
            CONSTRAINT uq_slots_doctor_start UNIQUE (doctor_id, start_time)
        )
        """
    )
    op.execute(
        """
        DO $$ BEGIN
            CREATE TYPE tokensource AS ENUM
                ('EMERGENCY', 'PAID', 'FOLLOW_UP', 'ONLINE', 'WALK_IN');
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
        """
    )
    op.execute(
        """
        DO $$ BEGIN
            CREATE TYPE tokenstatus AS ENUM ('ACTIVE', 'CANCELLED', 'NO_SHOW');
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS tokens (
            id VARCHAR(64) PRIMARY KEY,
            doctor_id VARCHAR(64) NOT NULL
                REFERENCES doctors(id) ON DELETE RESTRICT,
            slot_id VARCHAR(64) NOT NULL
                REFERENCES slots(id) ON DELETE RESTRICT,
            source tokensource NOT NULL,
            priority INTEGER NOT NULL,
            status tokenstatus NOT NULL DEFAULT 'ACTIVE',
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_tokens_slot_status_priority "
        "ON tokens (slot_id, status, priority)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_tokens_doctor_status_priority "
        "ON tokens (doctor_id, status, priority)"
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP INDEX IF EXISTS idx_tokens_doctor_status_priority")
    op.execute("DROP INDEX IF EXISTS idx_tokens_slot_status_priority")
    op.execute("DROP TABLE IF EXISTS tokens")
    op.execute("DROP TYPE IF EXISTS tokenstatus")
    op.execute("DROP TYPE IF EXISTS tokensource")
    op.execute("DROP TABLE IF EXISTS slots")
    op.execute("DROP TABLE IF EXISTS doctors")
