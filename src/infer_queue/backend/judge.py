"""Answer evaluation built on the same backend call as job inference."""

from __future__ import annotations

from collections.abc import Sequence

from infer_queue.backend.base import InferenceBackend
from infer_queue.errors import BackendError, InvalidInput
from infer_queue.models import ChatMessage

VERDICT_MATCH = 1
VERDICT_MISMATCH = 0

_JUDGE_PROMPT = """Evaluate whether the answer matches the question. Reply 1 if it matches, 0 if not.
# Instructions
Reply with the final score only, no explanation.
# Question
{question}
# Answer
{answer}"""


def build_judge_prompt(question: str, answer: str) -> str:
    return _JUDGE_PROMPT.format(question=question, answer=answer)


def evaluate_answer(
    backend: InferenceBackend,
    prompt: str,
    output: str,
    context: Sequence[ChatMessage] | None = None,
) -> bool:
    """Ask the backend whether ``output`` answers ``prompt``."""

    if not prompt:
        raise InvalidInput("EMPTY_USER_INPUT")
    if not output:
        raise InvalidInput("EMPTY_OUTPUT")

    raw = backend.generate(build_judge_prompt(prompt, output), context)
    verdict = raw.strip()
    if verdict == str(VERDICT_MATCH):
        return True
    if verdict == str(VERDICT_MISMATCH):
        return False
    raise BackendError(f"Unparseable judge verdict: {verdict[:80]!r}")


QUESTION_TEMPERATURE = 0.9

_QUESTION_PROMPT = (
    "Give me one random question, simple and direct, between 10 and 100 characters long. "
    "No explanation or commentary."
)


def random_question(backend: InferenceBackend) -> str:
    """Ask the backend for a short random question, e.g. to seed test traffic.

    Build the backend with ``temperature=QUESTION_TEMPERATURE`` to get varied
    questions across calls.
    """

    question = backend.generate(_QUESTION_PROMPT).strip()
    if not question:
        raise BackendError("Backend returned an empty question.")
    return question
