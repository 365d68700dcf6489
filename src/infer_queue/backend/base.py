"""Backend interface for job inference."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from infer_queue.models import ChatMessage

__all__ = ["ChatMessage", "InferenceBackend"]


class InferenceBackend(Protocol):
    """Protocol implemented by inference backends."""

    def generate(self, prompt: str, context: Sequence[ChatMessage] | None = None) -> str:
        """Return generated text or raise ``BackendError``."""
