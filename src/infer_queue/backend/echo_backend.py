"""Deterministic local backend for demos and tests."""

from __future__ import annotations

from collections.abc import Sequence

from infer_queue.errors import InvalidInput
from infer_queue.models import ChatMessage


class EchoBackend:
    """Answer every prompt with a fixed prefix plus the prompt text."""

    def __init__(self, *, prefix: str = "echo: ") -> None:
        self.prefix = prefix
        self.calls: list[tuple[str, tuple[ChatMessage, ...]]] = []

    def generate(self, prompt: str, context: Sequence[ChatMessage] | None = None) -> str:
        if not prompt:
            raise InvalidInput("EMPTY_USER_INPUT")
        self.calls.append((prompt, tuple(context or ())))
        return f"{self.prefix}{prompt.strip()}"
