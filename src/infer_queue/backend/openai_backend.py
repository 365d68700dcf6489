"""OpenAI-compatible chat completions backend over httpx."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from infer_queue.config import Settings
from infer_queue.errors import BackendError, InvalidInput
from infer_queue.models import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


class OpenAICompatibleBackend:
    """Chat completions client for OpenAI-compatible servers (Ollama, vLLM, OpenAI)."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        temperature: float | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds)),
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        temperature: float | None = None,
    ) -> OpenAICompatibleBackend:
        """Build the client with the worker's backend timeout as its request timeout.

        The worker abandons a timed-out call without killing its thread, so the
        HTTP timeout is what lets that thread finish.
        """

        backend = settings.backend
        return cls(
            base_url=backend.base_url,
            api_key=backend.api_key,
            model=backend.model,
            temperature=backend.temperature if temperature is None else temperature,
            timeout_seconds=settings.worker.backend_timeout_seconds,
        )

    def generate(self, prompt: str, context: Sequence[ChatMessage] | None = None) -> str:
        if not prompt:
            raise InvalidInput("EMPTY_USER_INPUT")

        messages = [{"role": turn.role, "content": turn.content} for turn in context or ()]
        messages.append({"role": "user", "content": prompt})
        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        try:
            response = self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as error:
            logger.warning("Timeout calling %s model %s", self._client.base_url, self.model)
            raise BackendError("Backend request timed out.") from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error calling %s: %s", self._client.base_url, error)
            raise BackendError(f"Backend request failed: {error}") from error

        if not response.is_success:
            raise BackendError(f"Backend returned HTTP {response.status_code}.")
        return _extract_content(response)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> OpenAICompatibleBackend:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _extract_content(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError as error:
        raise BackendError("Backend response is not valid JSON.") from error

    choices = body.get("choices") if isinstance(body, dict) else None
    if not isinstance(choices, list) or not choices:
        raise BackendError("Backend response has no choices.")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise BackendError("Backend response has no message content.")
    return content
