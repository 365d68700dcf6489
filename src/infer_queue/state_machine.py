"""Legal job status transitions.

Transitions are enforced by the job store: each mutating statement carries a
``WHERE status IN (...)`` guard built from this table, so a record can never
move backward or skip ``IN_PROGRESS``. The one exit from ``FAILURE`` is the
retry claim, allowed only while the attempt budget is not spent.
"""

from __future__ import annotations

from infer_queue.errors import InvalidTransition
from infer_queue.models import JobStatus

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.CREATED: frozenset({JobStatus.IN_PROGRESS}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.SUCCESS, JobStatus.FAILURE}),
    JobStatus.SUCCESS: frozenset(),
    JobStatus.FAILURE: frozenset({JobStatus.IN_PROGRESS}),
}


def can_transition(source: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS.get(source, frozenset())


def ensure_transition(source: JobStatus, target: JobStatus) -> None:
    """Raise ``InvalidTransition`` unless ``source -> target`` is legal."""

    if not can_transition(source, target):
        raise InvalidTransition(f"Illegal job transition: {source.label} -> {target.label}")


def sources_for(target: JobStatus) -> tuple[JobStatus, ...]:
    """Statuses from which ``target`` may be entered, in code order."""

    return tuple(sorted(source for source, targets in TRANSITIONS.items() if target in targets))


def claimable_statuses() -> tuple[JobStatus, ...]:
    return sources_for(JobStatus.IN_PROGRESS)


def retry_allowed(attempt: int, max_attempts: int) -> bool:
    """Whether a failed job with ``attempt`` claims may be claimed again.

    ``max_attempts == 0`` means unbounded.
    """

    return max_attempts == 0 or attempt < max_attempts


def is_terminal(status: JobStatus, *, attempt: int, max_attempts: int) -> bool:
    if status == JobStatus.SUCCESS:
        return True
    if status == JobStatus.FAILURE:
        return not retry_allowed(attempt, max_attempts)
    return False

