"""Read-only job lookup for the transport layer."""

from __future__ import annotations

from typing import Any

from infer_queue.models import JobRecord
from infer_queue.repository import JobRepository


class JobQueryFacade:
    """Pure reads over the job store; absence is a NotFound record, never an error."""

    def __init__(self, repository: JobRepository) -> None:
        self.repository = repository

    def lookup(self, ticket: str) -> JobRecord:
        return self.repository.get(ticket)

    def lookup_redacted(self, ticket: str) -> JobRecord:
        """Status and output hash only, for callers that may not see payloads."""

        return self.lookup(ticket).redacted()

    def lookup_payload(self, ticket: str, *, redacted: bool = False) -> dict[str, Any]:
        record = self.lookup_redacted(ticket) if redacted else self.lookup(ticket)
        return record.to_payload()
