"""Add per-claim token so only the current claim can complete a job."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "infer_jobs",
        sa.Column("claim_id", sa.Text(), nullable=False, server_default=""),
    )


def downgrade() -> None:
    with op.batch_alter_table("infer_jobs") as batch_op:
        batch_op.drop_column("claim_id")
