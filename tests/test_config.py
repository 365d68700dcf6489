from __future__ import annotations

from pathlib import Path

import allure
import pytest

from infer_queue.backend import EchoBackend
from infer_queue.config import BackendSettings, QueueSettings, Settings, WorkerSettings
from infer_queue.repository import JobRepository
from infer_queue.worker import JobWorker

pytestmark = [
    allure.epic("Inference Jobs"),
    allure.feature("Configuration"),
]


def test_from_env_uses_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "INFER_QUEUE_DB_PATH",
        "INFER_QUEUE_REPLACE_EXISTING",
        "INFER_QUEUE_MAX_ATTEMPTS",
        "INFER_QUEUE_BACKEND_TEMPERATURE",
        "INFER_QUEUE_BACKEND_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == Path(".infer_queue.db")
    assert settings.queue.replace_existing is True
    assert settings.queue.max_attempts == 2
    assert settings.backend.model == "llama3.1"
    assert settings.backend.temperature is None
    settings.validate()


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("INFER_QUEUE_DB_PATH", str(tmp_path / "jobs.db"))
    monkeypatch.setenv("INFER_QUEUE_REPLACE_EXISTING", "off")
    monkeypatch.setenv("INFER_QUEUE_MAX_ATTEMPTS", "0")
    monkeypatch.setenv("INFER_QUEUE_POLL_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("INFER_QUEUE_BACKEND_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("INFER_QUEUE_BACKEND_TEMPERATURE", "0.9")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "jobs.db"
    assert settings.queue.replace_existing is False
    assert settings.queue.max_attempts == 0
    assert settings.worker.poll_interval_seconds == 0.5
    assert settings.worker.backend_timeout_seconds == 30.0
    assert settings.backend.temperature == 0.9


def test_explicit_db_path_wins_over_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("INFER_QUEUE_DB_PATH", "ignored.db")

    settings = Settings.from_env(db_path=tmp_path / "explicit.db")

    assert settings.db_path == tmp_path / "explicit.db"


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INFER_QUEUE_REPLACE_EXISTING", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


def test_validate_rejects_negative_retry_budget() -> None:
    settings = Settings(queue=QueueSettings(max_attempts=-1))

    with pytest.raises(ValueError, match="MAX_ATTEMPTS"):
        settings.validate()


def test_validate_rejects_non_positive_backend_timeout() -> None:
    settings = Settings(worker=WorkerSettings(backend_timeout_seconds=0))

    with pytest.raises(ValueError, match="BACKEND_TIMEOUT_SECONDS"):
        settings.validate()


def test_validate_rejects_stale_threshold_within_backend_timeout() -> None:
    settings = Settings(
        worker=WorkerSettings(backend_timeout_seconds=120.0, stale_after_seconds=120),
    )

    with pytest.raises(ValueError, match="STALE_AFTER_SECONDS must exceed"):
        settings.validate()


def test_validate_allows_disabled_stale_recovery() -> None:
    Settings(worker=WorkerSettings(backend_timeout_seconds=120.0, stale_after_seconds=0)).validate()


def test_validate_rejects_relative_backend_url() -> None:
    settings = Settings(backend=BackendSettings(base_url="localhost:11434/v1"))

    with pytest.raises(ValueError, match="Invalid INFER_QUEUE_BACKEND_BASE_URL"):
        settings.validate()


def test_components_are_built_from_settings(tmp_path: Path) -> None:
    settings = Settings(
        db_path=tmp_path / "configured.db",
        queue=QueueSettings(replace_existing=False, max_attempts=5),
        worker=WorkerSettings(poll_interval_seconds=0.5, backend_timeout_seconds=3.0),
    )

    repository = JobRepository.from_settings(settings)
    worker = JobWorker.from_settings(
        settings.worker,
        repository=repository,
        backend=EchoBackend(),
        worker_id="w1",
    )

    assert repository.db_path == tmp_path / "configured.db"
    assert repository.replace_existing is False
    assert repository.max_attempts == 5
    assert worker.worker_id == "w1"
    assert worker.poll_interval_seconds == 0.5
    assert worker.backend_timeout_seconds == 3.0
    assert worker.stale_after_seconds == 1_800
    repository.close()
