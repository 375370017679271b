"""Job types and schedule arithmetic."""

from promptloop.core.cron.schedule import compute_next_run, parse_schedule
from promptloop.core.cron.types import Job, RunHistory, RunOutcome

__all__ = ["Job", "RunHistory", "RunOutcome", "compute_next_run", "parse_schedule"]
