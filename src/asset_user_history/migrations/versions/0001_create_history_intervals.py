"""Create the history interval table.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "auh_history_intervals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("object_id", sa.Integer(), nullable=False),
        sa.Column("object_type", sa.String(length=255), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_auh_history_item", "auh_history_intervals", ["object_type", "object_id"])
    op.create_index("ix_auh_history_subject", "auh_history_intervals", ["subject_id"])


def downgrade() -> None:
    op.drop_index("ix_auh_history_subject", table_name="auh_history_intervals")
    op.drop_index("ix_auh_history_item", table_name="auh_history_intervals")
    op.drop_table("auh_history_intervals")
