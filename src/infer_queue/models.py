"""Domain models for inference jobs."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class JobStatus(IntEnum):
    """Job lifecycle states, stored as small integer codes."""

    CREATED = 1
    IN_PROGRESS = 2
    SUCCESS = 3
    FAILURE = 4
    NOT_FOUND = 5

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    JobStatus.CREATED: "Created",
    JobStatus.IN_PROGRESS: "InProgress",
    JobStatus.SUCCESS: "Success",
    JobStatus.FAILURE: "Failure",
    JobStatus.NOT_FOUND: "NotFound",
}


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """One prior conversation turn passed to the backend as context."""

    role: str
    content: str


@dataclass(slots=True, frozen=True)
class JobRecord:
    """Readable job view for the worker and query callers."""

    ticket: str
    status: JobStatus
    context: str = ""
    input: str = ""
    output: str = ""
    output_hash: str = ""
    attempt: int = 0
    error_summary: str = ""
    created_at: str = ""
    started_at: str = ""
    completed_at: str = ""
    claim_id: str = ""

    @classmethod
    def not_found(cls, ticket: str = "") -> JobRecord:
        """Synthetic record representing an unknown ticket."""

        return cls(ticket=ticket, status=JobStatus.NOT_FOUND)

    @property
    def exists(self) -> bool:
        return self.status != JobStatus.NOT_FOUND

    def redacted(self) -> JobRecord:
        """Copy holding only ticket, status and output hash."""

        return JobRecord(ticket=self.ticket, status=self.status, output_hash=self.output_hash)

    def to_payload(self) -> dict[str, Any]:
        """Structured representation for the transport layer."""

        return {
            "ticket": self.ticket,
            "status": self.status.label,
            "input": self.input,
            "output": self.output,
            "output_hash": self.output_hash,
        }


def hash_output(output: str) -> str:
    """Lowercase hex SHA-256 of the UTF-8 encoded output."""

    return hashlib.sha256(output.encode("utf-8")).hexdigest()


def encode_context(turns: tuple[ChatMessage, ...] | list[ChatMessage]) -> str:
    """Serialize prior turns into the stored context blob."""

    if not turns:
        return ""
    return json.dumps(
        [{"role": turn.role, "content": turn.content} for turn in turns],
        ensure_ascii=False,
    )


def decode_context(blob: str) -> list[ChatMessage]:
    """Parse a stored context blob back into turns.

    Blobs that are not a JSON list of ``{role, content}`` objects are treated
    as free text and passed as a single system message.
    """

    if not blob.strip():
        return []
    try:
        parsed = json.loads(blob)
    except json.JSONDecodeError:
        return [ChatMessage(role="system", content=blob)]
    if not isinstance(parsed, list):
        return [ChatMessage(role="system", content=blob)]

    turns: list[ChatMessage] = []
    for item in parsed:
        if not isinstance(item, dict):
            return [ChatMessage(role="system", content=blob)]
        role = item.get("role")
        content = item.get("content")
        if not isinstance(role, str) or not isinstance(content, str):
            return [ChatMessage(role="system", content=blob)]
        turns.append(ChatMessage(role=role, content=content))
    return turns
