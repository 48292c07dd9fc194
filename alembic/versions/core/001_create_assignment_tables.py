"""create_assignment_tables

Revision ID: core_001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "core_001"
down_revision = None
branch_labels = ("core",)
depends_on = None


def upgrade() -> None:
    # Collaborator tables are owned elsewhere on the shared platform database;
    # standalone deployments get the minimal columns read by the directory.
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            intervals_icu_id TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS intervals_icu_id TEXT")

    op.execute("""
        CREATE TABLE IF NOT EXISTS workout_library (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            training_type TEXT,
            estimated_duration_minutes INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS workout_assignments (
            id SERIAL PRIMARY KEY,
            workout_template_id INTEGER NOT NULL,
            assigned_to_athlete_id INTEGER NOT NULL,
            assigned_by_id INTEGER NOT NULL,
            scheduled_date DATE NOT NULL,
            status TEXT NOT NULL DEFAULT 'assigned'
                CHECK (status IN ('assigned', 'in_progress', 'completed', 'skipped', 'cancelled')),
            priority TEXT NOT NULL DEFAULT 'normal'
                CHECK (priority IN ('low', 'normal', 'high')),
            intensity_adjustment DOUBLE PRECISION NOT NULL DEFAULT 1.0
                CHECK (intensity_adjustment BETWEEN 0.5 AND 2.0),
            duration_adjustment DOUBLE PRECISION NOT NULL DEFAULT 1.0
                CHECK (duration_adjustment BETWEEN 0.5 AND 2.0),
            custom_notes TEXT,
            completion_notes TEXT,
            completed_at TIMESTAMPTZ,
            sync_status TEXT NOT NULL DEFAULT 'pending'
                CHECK (sync_status IN (
                    'not_configured', 'pending', 'synced', 'sync_failed', 'delete_failed'
                )),
            external_event_id TEXT,
            sync_error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_workout_assignments_athlete_date
        ON workout_assignments (assigned_to_athlete_id, scheduled_date)
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_workout_assignments_athlete_date")
    op.execute("DROP TABLE IF EXISTS workout_assignments")
