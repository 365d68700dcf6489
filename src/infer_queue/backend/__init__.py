"""Inference backend implementations."""

from infer_queue.backend.base import ChatMessage, InferenceBackend
from infer_queue.backend.echo_backend import EchoBackend
from infer_queue.backend.judge import QUESTION_TEMPERATURE, evaluate_answer, random_question
from infer_queue.backend.openai_backend import OpenAICompatibleBackend

__all__ = [
    "ChatMessage",
    "EchoBackend",
    "InferenceBackend",
    "OpenAICompatibleBackend",
    "QUESTION_TEMPERATURE",
    "evaluate_answer",
    "random_question",
]
