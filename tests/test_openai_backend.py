from __future__ import annotations

import json

import allure
import httpx
import pytest

from infer_queue.backend import (
    QUESTION_TEMPERATURE,
    EchoBackend,
    OpenAICompatibleBackend,
    evaluate_answer,
    random_question,
)
from infer_queue.backend.judge import build_judge_prompt
from infer_queue.config import BackendSettings, Settings, WorkerSettings
from infer_queue.errors import BackendError, InvalidInput
from infer_queue.models import ChatMessage

pytestmark = [
    allure.epic("Inference Jobs"),
    allure.feature("Inference Backend"),
]


def _completion(content: object) -> dict[str, object]:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


def _backend(handler, **kwargs: object) -> OpenAICompatibleBackend:
    return OpenAICompatibleBackend(
        base_url="http://llm.test/v1",
        api_key="secret",
        model="test-model",
        transport=httpx.MockTransport(handler),
        **kwargs,  # type: ignore[arg-type]
    )


def test_generate_posts_chat_completion_with_context() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_completion("4"))

    backend = _backend(handler, temperature=0.0)
    answer = backend.generate("2+2?", [ChatMessage(role="system", content="Be brief.")])
    backend.close()

    assert answer == "4"
    request = captured[0]
    assert request.method == "POST"
    assert request.url == "http://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "model": "test-model",
        "messages": [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "2+2?"},
        ],
        "temperature": 0.0,
    }


def test_generate_omits_temperature_when_unset() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_completion("ok"))

    with _backend(handler) as backend:
        backend.generate("hello")

    assert "temperature" not in bodies[0]
    assert bodies[0]["messages"] == [{"role": "user", "content": "hello"}]


def test_generate_rejects_empty_prompt_without_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with _backend(handler) as backend, pytest.raises(InvalidInput, match="EMPTY_USER_INPUT"):
        backend.generate("")


@pytest.mark.parametrize(
    ("response", "message"),
    [
        (httpx.Response(503, text="overloaded"), "HTTP 503"),
        (httpx.Response(200, text="not json"), "not valid JSON"),
        (httpx.Response(200, json={"choices": []}), "no choices"),
        (httpx.Response(200, json=_completion("  ")), "no message content"),
        (httpx.Response(200, json=_completion(None)), "no message content"),
    ],
)
def test_unusable_responses_raise_backend_error(response: httpx.Response, message: str) -> None:
    with _backend(lambda request: response) as backend, pytest.raises(BackendError, match=message):
        backend.generate("hello")


def test_transport_errors_raise_backend_error() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with _backend(refuse) as backend, pytest.raises(BackendError, match="request failed"):
        backend.generate("hello")
    with _backend(stall) as backend, pytest.raises(BackendError, match="timed out"):
        backend.generate("hello")


def test_from_settings_uses_worker_backend_timeout() -> None:
    settings = Settings(
        worker=WorkerSettings(backend_timeout_seconds=5.0),
        backend=BackendSettings(base_url="http://gpu.local:8000/v1", model="qwen"),
    )

    backend = OpenAICompatibleBackend.from_settings(settings)
    try:
        assert backend.model == "qwen"
        assert backend.temperature is None
        assert backend.timeout_seconds == 5.0
    finally:
        backend.close()


def test_from_settings_temperature_override() -> None:
    settings = Settings(backend=BackendSettings(temperature=0.1))

    backend = OpenAICompatibleBackend.from_settings(settings, temperature=QUESTION_TEMPERATURE)
    try:
        assert backend.temperature == QUESTION_TEMPERATURE
        assert backend.timeout_seconds == settings.worker.backend_timeout_seconds
    finally:
        backend.close()


class _VerdictBackend:
    def __init__(self, verdict: str) -> None:
        self.verdict = verdict
        self.prompts: list[str] = []

    def generate(self, prompt: str, context=None) -> str:
        self.prompts.append(prompt)
        return self.verdict


def test_evaluate_answer_parses_verdicts() -> None:
    matching = _VerdictBackend(" 1\n")
    assert evaluate_answer(matching, "2+2?", "4") is True
    assert matching.prompts == [build_judge_prompt("2+2?", "4")]
    assert evaluate_answer(_VerdictBackend("0"), "2+2?", "5") is False


def test_evaluate_answer_rejects_unparseable_verdict() -> None:
    with pytest.raises(BackendError, match="Unparseable judge verdict"):
        evaluate_answer(_VerdictBackend("probably"), "2+2?", "4")


def test_evaluate_answer_rejects_empty_values() -> None:
    with pytest.raises(InvalidInput, match="EMPTY_OUTPUT"):
        evaluate_answer(_VerdictBackend("1"), "2+2?", "")
    with pytest.raises(InvalidInput, match="EMPTY_USER_INPUT"):
        evaluate_answer(_VerdictBackend("1"), "", "4")


def test_echo_backend_records_calls() -> None:
    backend = EchoBackend(prefix="> ")

    assert backend.generate(" hi ") == "> hi"
    assert backend.calls == [(" hi ", ())]
    with pytest.raises(InvalidInput):
        backend.generate("")


def test_random_question_is_sampled_at_question_temperature() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_completion("  Why is the sky blue?\n"))

    with _backend(handler, temperature=QUESTION_TEMPERATURE) as backend:
        question = random_question(backend)

    assert question == "Why is the sky blue?"
    assert bodies[0]["temperature"] == 0.9
    assert bodies[0]["messages"][0]["role"] == "user"  # type: ignore[index]


def test_random_question_rejects_blank_answer() -> None:
    with pytest.raises(BackendError, match="empty question"):
        random_question(_VerdictBackend("   "))
