"""Use-case services for job submission."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import uuid4

from infer_queue.models import ChatMessage, encode_context
from infer_queue.repository import JobRepository


class JobSubmissionService:
    """Builds the stored job from a prompt and prior turns."""

    def __init__(self, repository: JobRepository) -> None:
        self.repository = repository

    def submit(
        self,
        prompt: str,
        *,
        ticket: str | None = None,
        context_turns: Sequence[ChatMessage] = (),
    ) -> str:
        """Enqueue one inference job and return its ticket."""

        job_ticket = ticket or uuid4().hex
        self.repository.create(job_ticket, encode_context(list(context_turns)), prompt)
        return job_ticket
