"""Create artifact index table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "work_entries",
        sa.Column("record_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("work_id", sa.Integer(), nullable=False),
        sa.Column("path", sa.String(), nullable=False),
        sa.Column("last_access_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_work_entries_work_id", "work_entries", ["work_id"], unique=True)
    op.create_index(
        "ix_work_entries_last_access",
        "work_entries",
        ["last_access_at", "record_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_work_entries_last_access", table_name="work_entries")
    op.drop_index("ix_work_entries_work_id", table_name="work_entries")
    op.drop_table("work_entries")
