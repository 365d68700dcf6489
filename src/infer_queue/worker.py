"""Queue worker that runs inference for pending jobs."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from infer_queue.backend.base import InferenceBackend
from infer_queue.config import WorkerSettings
from infer_queue.errors import BackendError, InvalidInput
from infer_queue.models import JobRecord, JobStatus, decode_context, hash_output
from infer_queue.repository import JobRepository

logger = logging.getLogger(__name__)

TIMEOUT_ERROR_SUMMARY = "timeout"


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    timeouts: int = 0
    conflicts: int = 0
    recovered: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.timeouts += other.timeouts
        self.conflicts += other.conflicts
        self.recovered += other.recovered
        self.idle_polls += other.idle_polls


@dataclass(slots=True)
class InferenceOutcome:
    output: str | None
    error_summary: str
    timed_out: bool = False


class JobWorker:
    """Consumes pending jobs one at a time and persists their outcome."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobRepository,
        backend: InferenceBackend,
        worker_id: str = "worker",
        poll_interval_seconds: float = 2.0,
        backend_timeout_seconds: float = 120.0,
        stale_after_seconds: float = 1800,
    ) -> None:
        if backend_timeout_seconds <= 0:
            raise ValueError("backend_timeout_seconds must be > 0")
        if 0 < stale_after_seconds <= backend_timeout_seconds:
            raise ValueError("stale_after_seconds must exceed backend_timeout_seconds")
        self.repository = repository
        self.backend = backend
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.backend_timeout_seconds = backend_timeout_seconds
        self.stale_after_seconds = stale_after_seconds
        self._stop_requested = False

    @classmethod
    def from_settings(
        cls,
        settings: WorkerSettings,
        *,
        repository: JobRepository,
        backend: InferenceBackend,
        worker_id: str = "worker",
    ) -> JobWorker:
        return cls(
            repository=repository,
            backend=backend,
            worker_id=worker_id,
            poll_interval_seconds=settings.poll_interval_seconds,
            backend_timeout_seconds=settings.backend_timeout_seconds,
            stale_after_seconds=settings.stale_after_seconds,
        )

    def run_once(self) -> WorkerRunSummary:
        """Process at most one job from the queue."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        summary.recovered = self._recover_stale_jobs()
        job = self.repository.claim_next()
        if job is None:
            logger.debug("Worker %s found no pending jobs", self.worker_id)
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        outcome = self._infer(job)
        if outcome.output is not None:
            completed = self.repository.complete(
                job.ticket,
                outcome.output,
                hash_output(outcome.output),
                JobStatus.SUCCESS,
                claim_id=job.claim_id,
            )
            if completed:
                summary.succeeded = 1
        else:
            completed = self.repository.complete(
                job.ticket,
                "",
                "",
                JobStatus.FAILURE,
                error_summary=outcome.error_summary,
                claim_id=job.claim_id,
            )
            if completed:
                summary.failed = 1
                summary.timeouts = 1 if outcome.timed_out else 0

        if not completed:
            logger.warning(
                "Job %s is no longer held by this claim; outcome discarded",
                job.ticket,
            )
            summary.conflicts = 1
        return summary

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int | None = 1,
    ) -> WorkerRunSummary:
        """Run worker loop until queue is idle or max_jobs reached.

        Args:
            max_jobs: Stop after processing this many jobs (None = unlimited).
            max_idle_polls: How many consecutive empty polls before exiting
                (None = poll forever).
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        with self._signal_handlers():
            while True:
                if self._stop_requested:
                    return aggregate
                if max_jobs is not None and aggregate.processed >= max_jobs:
                    return aggregate

                summary = self.run_once()
                aggregate.add(summary)

                if summary.processed == 0:
                    consecutive_idle += 1
                    if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                        return aggregate
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0

    def request_stop(self) -> None:
        self._stop_requested = True

    def _recover_stale_jobs(self) -> int:
        if self.stale_after_seconds <= 0:
            return 0
        return self.repository.recover_stale(
            stale_after=timedelta(seconds=self.stale_after_seconds),
        )

    def _infer(self, job: JobRecord) -> InferenceOutcome:
        context = decode_context(job.context) or None
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="infer-backend")
        try:
            future = executor.submit(self.backend.generate, job.input, context)
            output = future.result(timeout=self.backend_timeout_seconds)
        except FutureTimeoutError:
            logger.warning(
                "Backend timed out after %.1fs for job %s",
                self.backend_timeout_seconds,
                job.ticket,
            )
            return InferenceOutcome(output=None, error_summary=TIMEOUT_ERROR_SUMMARY, timed_out=True)
        except (BackendError, InvalidInput) as error:
            logger.warning("Backend failed for job %s: %s", job.ticket, error)
            return InferenceOutcome(output=None, error_summary=str(error))
        except Exception as error:  # noqa: BLE001
            logger.exception("Backend crashed for job %s", job.ticket)
            return InferenceOutcome(
                output=None,
                error_summary=f"backend_crashed: {type(error).__name__}: {error}",
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if not isinstance(output, str):
            logger.warning("Backend returned %s for job %s", type(output).__name__, job.ticket)
            return InferenceOutcome(output=None, error_summary="backend_output_not_text")
        return InferenceOutcome(output=output, error_summary="")

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Worker %s received %s; stopping after current job", self.worker_id, name)
            self.request_stop()

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
