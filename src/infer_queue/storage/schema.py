"""SQLModel table for inference jobs and schema verification."""

from __future__ import annotations

from sqlalchemy import Column, Index, Integer, SmallInteger, Text, inspect
from sqlalchemy.engine import Engine
from sqlmodel import Field, SQLModel

from infer_queue.errors import StorageError

JOBS_TABLE = "infer_jobs"


def _text_column() -> Column:
    return Column(Text, nullable=False, server_default="")


class InferJob(SQLModel, table=True):
    __tablename__ = JOBS_TABLE  # type: ignore[bad-override]
    __table_args__ = (Index("idx_infer_jobs_pending", "status", "created_at"),)

    ticket: str = Field(primary_key=True)
    context: str = Field(default="", sa_column=_text_column())
    input: str = Field(default="", sa_column=_text_column())
    output: str = Field(default="", sa_column=_text_column())
    output_hash: str = Field(default="", sa_column=_text_column())
    status: int = Field(sa_column=Column(SmallInteger, nullable=False))
    attempt: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    error_summary: str = Field(default="", sa_column=_text_column())
    created_at: str = Field(default="", sa_column=_text_column())
    started_at: str = Field(default="", sa_column=_text_column())
    completed_at: str = Field(default="", sa_column=_text_column())
    claim_id: str = Field(default="", sa_column=_text_column())


EXPECTED_COLUMNS = frozenset(column.name for column in InferJob.__table__.columns)


def verify_schema(engine: Engine) -> None:
    """Confirm the jobs table exists with the expected columns before serving traffic."""

    inspector = inspect(engine)
    if not inspector.has_table(JOBS_TABLE):
        raise StorageError(f"Table {JOBS_TABLE!r} is missing; run schema migrations.")

    present = {column["name"] for column in inspector.get_columns(JOBS_TABLE)}
    missing = sorted(EXPECTED_COLUMNS - present)
    if missing:
        raise StorageError(
            f"Table {JOBS_TABLE!r} is missing columns: {', '.join(missing)}.",
        )

    primary_key = inspector.get_pk_constraint(JOBS_TABLE).get("constrained_columns") or []
    if primary_key != ["ticket"]:
        raise StorageError(
            f"Table {JOBS_TABLE!r} must be keyed by ticket, got primary key {primary_key!r}.",
        )
