"""Shared fixtures."""

from datetime import datetime, timezone

import pytest

from promptloop.core.cron.types import Job
from promptloop.storage.store import SqliteJobStore

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)  # Saturday


@pytest.fixture
def store(tmp_path):
    return SqliteJobStore(str(tmp_path / "jobs.db"))


@pytest.fixture
def make_job():
    """Factory for Job models with sensible defaults."""

    def _make(job_id="j1", **overrides) -> Job:
        fields = {
            "id": job_id,
            "name": "Morning brief",
            "prompt": "Summarize today's tech news",
            "schedule_type": "daily",
            "schedule_time": "09:00",
            "channel_type": "discord",
            "channel_config": {"webhookUrlEnc": "x:y:z"},
            "next_run_at": NOW,
        }
        fields.update(overrides)
        return Job(**fields)

    return _make
