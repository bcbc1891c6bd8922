"""One active trip per rider.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

ACTIVE = "status IN ('REQUESTED', 'ACCEPTED', 'IN_PROGRESS')"


def upgrade() -> None:
    op.create_index(
        "uq_trips_rider_active",
        "trips",
        ["rider_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE),
    )


def downgrade() -> None:
    op.drop_index("uq_trips_rider_active", table_name="trips")
