"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from infer_queue.repository import JobRepository


@pytest.fixture()
def job_repository(tmp_path: Path):
    """Migrated job store in a throwaway database."""
    repository = JobRepository(tmp_path / "jobs.db")
    repository.init_schema()
    yield repository
    repository.close()
