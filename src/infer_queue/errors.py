"""Error taxonomy shared by the job store, worker and backends."""

from __future__ import annotations


class JobQueueError(RuntimeError):
    """Base class for all queue errors."""


class InvalidInput(JobQueueError, ValueError):
    """Rejected input: empty prompt, empty ticket, empty output under evaluation."""


class NotFoundError(JobQueueError):
    """Claim/complete addressed a ticket absent from storage."""

    def __init__(self, ticket: str) -> None:
        super().__init__(f"Job not found: {ticket}")
        self.ticket = ticket


class TicketExistsError(JobQueueError):
    """Re-submission under an existing ticket while replacement is disabled."""

    def __init__(self, ticket: str) -> None:
        super().__init__(f"Job already exists: {ticket}")
        self.ticket = ticket


class InvalidTransition(JobQueueError, ValueError):
    """Requested status move is not allowed by the job lifecycle."""


class BackendError(JobQueueError):
    """Inference backend failed or returned unusable output."""


class StorageError(JobQueueError):
    """Persistence layer is unreachable, locked beyond timeout, or corrupt."""
