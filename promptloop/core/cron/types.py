"""Job and run-history types."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

OUTPUT_PREVIEW_MAX = 1000
ERROR_MESSAGE_MAX = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """Scheduled job — mirrors the ``jobs`` table."""

    id: str
    name: str
    prompt: str
    allow_web_search: bool = False
    schedule_type: str  # 'daily' | 'weekly' | 'cron'
    schedule_time: str = ""  # HH:MM, daily/weekly
    schedule_day_of_week: int | None = None  # 0=Sunday … 6=Saturday, weekly
    schedule_cron: str | None = None  # five-field expression or @shorthand, cron
    channel_type: str  # 'discord' | 'telegram'
    # dict when the stored JSON is an object, otherwise the raw stored text
    channel_config: dict[str, Any] | str = Field(default_factory=dict)
    fail_count: int = 0
    enabled: bool = True
    next_run_at: datetime
    locked_at: datetime | None = None

    @field_validator("next_run_at", "locked_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_aware(value)

    @field_validator("channel_config", mode="before")
    @classmethod
    def _decode_channel_config(cls, value: Any) -> Any:
        # SQLite keeps JSON as text, Postgres hands back decoded JSON
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        if isinstance(value, str):
            try:
                decoded = json.loads(value or "{}")
            except ValueError:
                return value
            return decoded if isinstance(decoded, dict) else value
        if value is None or isinstance(value, dict):
            return value or {}
        return json.dumps(value)


class RunHistory(BaseModel):
    """One execution attempt — mirrors the append-only ``run_histories`` table."""

    id: str
    job_id: str
    run_at: datetime
    status: Literal["success", "fail"]
    output_preview: str | None = None
    error_message: str | None = None

    @field_validator("run_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return _as_aware(value)


@dataclass(frozen=True)
class RunOutcome:
    """Result of generating and delivering one job."""

    ok: bool
    output: str = ""
    error: str = ""

    @classmethod
    def success(cls, output: str) -> RunOutcome:
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: str | BaseException) -> RunOutcome:
        return cls(ok=False, error=str(error))

    @property
    def status(self) -> str:
        return "success" if self.ok else "fail"

    @property
    def output_preview(self) -> str | None:
        return _preview(self.output, OUTPUT_PREVIEW_MAX) if self.ok else None

    @property
    def error_message(self) -> str | None:
        return None if self.ok else _preview(self.error, ERROR_MESSAGE_MAX)


def _as_aware(value: datetime | None) -> datetime | None:
    """Naive timestamps from the database are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _preview(value: str, limit: int) -> str | None:
    """Truncate to ``limit`` characters; blank values are stored as NULL."""
    if not value or not value.strip():
        return None
    return value[:limit]
