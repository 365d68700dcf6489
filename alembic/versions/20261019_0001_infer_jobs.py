"""Inference job table keyed by ticket."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "infer_jobs",
        sa.Column("ticket", sa.String(), nullable=False),
        sa.Column("context", sa.Text(), nullable=False, server_default=""),
        sa.Column("input", sa.Text(), nullable=False, server_default=""),
        sa.Column("output", sa.Text(), nullable=False, server_default=""),
        sa.Column("output_hash", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.SmallInteger(), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.Text(), nullable=False, server_default=""),
        sa.Column("started_at", sa.Text(), nullable=False, server_default=""),
        sa.Column("completed_at", sa.Text(), nullable=False, server_default=""),
        sa.PrimaryKeyConstraint("ticket"),
    )
    op.create_index(
        "idx_infer_jobs_pending",
        "infer_jobs",
        ["status", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_infer_jobs_pending", table_name="infer_jobs")
    op.drop_table("infer_jobs")
