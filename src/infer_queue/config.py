"""Runtime configuration for the job store, worker and inference backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse


@dataclass(slots=True)
class StorageSettings:
    """SQLite connection policy."""

    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class QueueSettings:
    """Submission and retry policy."""

    replace_existing: bool = True
    max_attempts: int = 2


@dataclass(slots=True)
class WorkerSettings:
    """Worker loop pacing and limits."""

    poll_interval_seconds: float = 2.0
    backend_timeout_seconds: float = 120.0
    stale_after_seconds: int = 1_800


@dataclass(slots=True)
class BackendSettings:
    """OpenAI-compatible inference endpoint."""

    base_url: str = "http://localhost:11434/v1"
    api_key: str = "ollama"
    model: str = "llama3.1"
    temperature: float | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".infer_queue.db")
    storage: StorageSettings = field(default_factory=StorageSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        temperature_raw = os.getenv("INFER_QUEUE_BACKEND_TEMPERATURE", "").strip()
        return cls(
            db_path=db_path or Path(os.getenv("INFER_QUEUE_DB_PATH", ".infer_queue.db")),
            storage=StorageSettings(
                busy_timeout_ms=int(os.getenv("INFER_QUEUE_BUSY_TIMEOUT_MS", "5000")),
            ),
            queue=QueueSettings(
                replace_existing=_env_bool("INFER_QUEUE_REPLACE_EXISTING", default=True),
                max_attempts=int(os.getenv("INFER_QUEUE_MAX_ATTEMPTS", "2")),
            ),
            worker=WorkerSettings(
                poll_interval_seconds=float(
                    os.getenv("INFER_QUEUE_POLL_INTERVAL_SECONDS", "2.0"),
                ),
                backend_timeout_seconds=float(
                    os.getenv("INFER_QUEUE_BACKEND_TIMEOUT_SECONDS", "120"),
                ),
                stale_after_seconds=int(os.getenv("INFER_QUEUE_STALE_AFTER_SECONDS", "1800")),
            ),
            backend=BackendSettings(
                base_url=os.getenv("INFER_QUEUE_BACKEND_BASE_URL", "http://localhost:11434/v1"),
                api_key=os.getenv("INFER_QUEUE_BACKEND_API_KEY", "ollama"),
                model=os.getenv("INFER_QUEUE_BACKEND_MODEL", "llama3.1"),
                temperature=float(temperature_raw) if temperature_raw else None,
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the queue cannot run with."""

        if self.storage.busy_timeout_ms <= 0:
            raise ValueError("INFER_QUEUE_BUSY_TIMEOUT_MS must be > 0.")
        if self.queue.max_attempts < 0:
            raise ValueError("INFER_QUEUE_MAX_ATTEMPTS must be >= 0 (0 means unbounded).")
        if self.worker.poll_interval_seconds < 0:
            raise ValueError("INFER_QUEUE_POLL_INTERVAL_SECONDS must be >= 0.")
        if self.worker.backend_timeout_seconds <= 0:
            raise ValueError("INFER_QUEUE_BACKEND_TIMEOUT_SECONDS must be > 0.")
        if self.worker.stale_after_seconds < 0:
            raise ValueError("INFER_QUEUE_STALE_AFTER_SECONDS must be >= 0 (0 disables).")
        if 0 < self.worker.stale_after_seconds <= self.worker.backend_timeout_seconds:
            raise ValueError(
                "INFER_QUEUE_STALE_AFTER_SECONDS must exceed "
                "INFER_QUEUE_BACKEND_TIMEOUT_SECONDS, or be 0 to disable recovery.",
            )
        parsed = urlparse(self.backend.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "Invalid INFER_QUEUE_BACKEND_BASE_URL: "
                f"{self.backend.base_url!r}. Expected an absolute http(s) URL.",
            )
        if not self.backend.model.strip():
            raise ValueError("INFER_QUEUE_BACKEND_MODEL must not be empty.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
