"""Persistent job store backed by SQLModel + SQLite."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import and_, literal_column, or_, text
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DatabaseError
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from infer_queue.config import Settings
from infer_queue.errors import InvalidInput, NotFoundError, StorageError, TicketExistsError
from infer_queue.models import JobRecord, JobStatus, hash_output
from infer_queue.state_machine import (
    claimable_statuses,
    ensure_transition,
    is_terminal,
    sources_for,
)
from infer_queue.storage.alembic_runner import upgrade_head
from infer_queue.storage.common import build_sqlite_engine, to_db_timestamp, utc_now
from infer_queue.storage.schema import InferJob, verify_schema

logger = logging.getLogger(__name__)

STALE_ERROR_SUMMARY = "stale_in_progress"


class JobRepository:
    """Job store facade; one instance per process, injected into every component."""

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = 5_000,
        replace_existing: bool = True,
        max_attempts: int = 2,
    ) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0 (0 means unbounded)")
        self.db_path = db_path
        self.replace_existing = replace_existing
        self.max_attempts = max_attempts
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    @classmethod
    def from_settings(cls, settings: Settings) -> JobRepository:
        return cls(
            settings.db_path,
            busy_timeout_ms=settings.storage.busy_timeout_ms,
            replace_existing=settings.queue.replace_existing,
            max_attempts=settings.queue.max_attempts,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations and verify the jobs table shape.

        Safe to call on every process start.
        """

        with _storage_errors():
            upgrade_head(self.db_path)
            verify_schema(self.engine)

    def journal_mode(self) -> str:
        with _storage_errors(), self.engine.connect() as connection:
            return str(connection.execute(text("PRAGMA journal_mode")).scalar_one()).lower()

    def create(self, ticket: str, context: str, input: str) -> None:  # noqa: A002
        """Insert or replace a job with status Created."""

        if not ticket:
            raise InvalidInput("Ticket must not be empty.")
        if not input:
            raise InvalidInput("EMPTY_USER_INPUT")

        now = to_db_timestamp(utc_now())
        values = {
            "ticket": ticket,
            "context": context,
            "input": input,
            "output": "",
            "output_hash": "",
            "status": JobStatus.CREATED.value,
            "attempt": 0,
            "error_summary": "",
            "created_at": now,
            "started_at": "",
            "completed_at": "",
            "claim_id": "",
        }
        statement = sqlite_insert(InferJob).values(**values)
        if self.replace_existing:
            statement = statement.on_conflict_do_update(
                index_elements=["ticket"],
                set_={key: value for key, value in values.items() if key != "ticket"},
            )
        else:
            statement = statement.on_conflict_do_nothing(index_elements=["ticket"])

        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(statement)  # type: ignore[call-overload]
            if result.rowcount != 1:
                session.rollback()
                raise TicketExistsError(ticket)
            session.commit()
        logger.debug("Created job %s", ticket)

    def claim(self, ticket: str) -> bool:
        """Move one eligible job to InProgress.

        Returns False when the job exists but is not claimable (already
        running, succeeded, or failed with the retry budget spent).
        """

        now = to_db_timestamp(utc_now())
        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_update(InferJob)
                .where(col(InferJob.ticket) == ticket, self._claimable_clause())
                .values(
                    status=JobStatus.IN_PROGRESS.value,
                    attempt=col(InferJob.attempt) + 1,
                    started_at=now,
                    completed_at="",
                    claim_id=uuid4().hex,
                    error_summary="",
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                current = self._current_row(session, ticket)
                if current is None:
                    raise NotFoundError(ticket)
                logger.debug(
                    "Job %s not claimable from %s (terminal=%s)",
                    ticket,
                    JobStatus(current.status).label,
                    is_terminal(
                        JobStatus(current.status),
                        attempt=current.attempt,
                        max_attempts=self.max_attempts,
                    ),
                )
                return False
            session.commit()
        logger.info("Claimed job %s", ticket)
        return True

    def claim_next(self) -> JobRecord | None:
        """Atomically select and claim the oldest eligible job.

        The conditional update only succeeds while the row is still
        claimable; a worker that loses the race picks the next candidate.
        """

        while True:
            candidate = self.select_pending()
            if candidate is None:
                return None
            now = to_db_timestamp(utc_now())
            with _storage_errors(), Session(self.engine) as session:
                result = session.exec(
                    sa_update(InferJob)
                    .where(
                        col(InferJob.ticket) == candidate.ticket,
                        col(InferJob.status) == candidate.status.value,
                        col(InferJob.attempt) == candidate.attempt,
                        self._claimable_clause(),
                    )
                    .values(
                        status=JobStatus.IN_PROGRESS.value,
                        attempt=candidate.attempt + 1,
                        started_at=now,
                        completed_at="",
                        claim_id=uuid4().hex,
                        error_summary="",
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue
                claimed = session.exec(
                    select(InferJob).where(InferJob.ticket == candidate.ticket),
                ).one()
                record = _to_record(claimed)
                session.commit()
            logger.info("Claimed job %s (attempt %d)", record.ticket, record.attempt)
            return record

    def complete(
        self,
        ticket: str,
        output: str,
        output_hash: str | None,
        status: JobStatus,
        *,
        error_summary: str = "",
        claim_id: str | None = None,
    ) -> bool:
        """Move a running job to Success or Failure.

        On Failure the output and hash are stored empty. On Success the hash
        is computed when omitted and must match the output when given.
        With ``claim_id`` the update only applies to that claim, so a result
        for a resubmitted or re-claimed job is rejected.
        Returns False when the job exists but is not InProgress under the
        given claim.
        """

        ensure_transition(JobStatus.IN_PROGRESS, status)
        if status == JobStatus.SUCCESS:
            expected_hash = hash_output(output)
            if output_hash is None:
                output_hash = expected_hash
            elif output_hash != expected_hash:
                raise InvalidInput(f"Output hash mismatch for job {ticket}.")
            error_summary = ""
        else:
            output = ""
            output_hash = ""

        guards = [
            col(InferJob.ticket) == ticket,
            col(InferJob.status).in_([source.value for source in sources_for(status)]),
        ]
        if claim_id is not None:
            guards.append(col(InferJob.claim_id) == claim_id)

        now = to_db_timestamp(utc_now())
        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_update(InferJob)
                .where(*guards)
                .values(
                    output=output,
                    output_hash=output_hash,
                    status=status.value,
                    error_summary=error_summary,
                    completed_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                if self._current_row(session, ticket) is None:
                    raise NotFoundError(ticket)
                return False
            session.commit()
        logger.info("Completed job %s with status %s", ticket, status.label)
        return True

    def get(self, ticket: str) -> JobRecord:
        """Return the stored job or a NotFound record; never raises on absence."""

        with _storage_errors(), Session(self.engine) as session:
            row = session.exec(select(InferJob).where(InferJob.ticket == ticket)).one_or_none()
            if row is None:
                return JobRecord.not_found()
            return _to_record(row)

    def select_pending(self) -> JobRecord | None:
        """Oldest job (by creation time, then insertion order) eligible for the worker."""

        with _storage_errors(), Session(self.engine) as session:
            row = session.exec(
                select(InferJob)
                .where(self._claimable_clause())
                .order_by(col(InferJob.created_at).asc(), literal_column("rowid").asc())
                .limit(1),
            ).one_or_none()
            if row is None:
                return None
            return _to_record(row)

    def recover_stale(self, *, stale_after: timedelta) -> int:
        """Fail InProgress jobs whose claim is older than ``stale_after``."""

        if stale_after.total_seconds() <= 0:
            raise ValueError("stale_after must be > 0")
        now = utc_now()
        threshold = to_db_timestamp(now - stale_after)
        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_update(InferJob)
                .where(
                    col(InferJob.status) == JobStatus.IN_PROGRESS.value,
                    col(InferJob.started_at) < threshold,
                )
                .values(
                    status=JobStatus.FAILURE.value,
                    output="",
                    output_hash="",
                    error_summary=STALE_ERROR_SUMMARY,
                    completed_at=to_db_timestamp(now),
                ),
            )
            session.commit()
            recovered = int(result.rowcount or 0)
        if recovered:
            logger.warning("Recovered %d stale in-progress job(s)", recovered)
        return recovered

    def _claimable_clause(self) -> ColumnElement[bool]:
        clauses: list[ColumnElement[bool]] = []
        for status in claimable_statuses():
            clause = col(InferJob.status) == status.value
            if status == JobStatus.FAILURE and self.max_attempts:
                clause = and_(clause, col(InferJob.attempt) < self.max_attempts)
            clauses.append(clause)
        return or_(*clauses)

    @staticmethod
    def _current_row(session: Session, ticket: str) -> InferJob | None:
        return session.exec(select(InferJob).where(InferJob.ticket == ticket)).one_or_none()


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except DatabaseError as error:
        raise StorageError(f"Job store unavailable: {error}") from error


def _to_record(row: InferJob) -> JobRecord:
    return JobRecord(
        ticket=row.ticket,
        status=JobStatus(row.status),
        context=row.context,
        input=row.input,
        output=row.output,
        output_hash=row.output_hash,
        attempt=row.attempt,
        error_summary=row.error_summary,
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
        claim_id=row.claim_id,
    )
