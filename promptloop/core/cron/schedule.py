"""Next-run computation for daily, weekly and cron schedules.

Pure functions: nothing here touches the store or the clock. Daily and
weekly arithmetic is done on the wall clock of the configured zone, then
converted back to UTC.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from promptloop.core.cron.types import Job
from promptloop.core.errors import ConfigError, ScheduleError

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class DailySchedule:
    hour: int
    minute: int


@dataclass(frozen=True)
class WeeklySchedule:
    hour: int
    minute: int
    day_of_week: int  # 0=Sunday … 6=Saturday


@dataclass(frozen=True)
class CronSchedule:
    expression: str


Schedule = DailySchedule | WeeklySchedule | CronSchedule


def resolve_timezone(name: str | tzinfo | None) -> tzinfo:
    """Return a tzinfo for ``name``; ``None`` and ``"UTC"`` map to UTC."""
    if name is None:
        return timezone.utc
    if isinstance(name, tzinfo):
        return name
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown time zone: {name}") from e


def parse_time_of_day(raw: str | None) -> tuple[int, int]:
    """Parse ``HH:MM`` (24-hour) into (hour, minute)."""
    match = _TIME_RE.match((raw or "").strip())
    if not match:
        raise ScheduleError(f"invalid time {raw!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ScheduleError(f"invalid time {raw!r}")
    return hour, minute


def parse_schedule(job: Job) -> Schedule:
    """Turn the job's denormalized schedule columns into a schedule variant."""
    kind = job.schedule_type
    if kind == "daily":
        return DailySchedule(*parse_time_of_day(job.schedule_time))
    if kind == "weekly":
        hour, minute = parse_time_of_day(job.schedule_time)
        if job.schedule_day_of_week is None:
            raise ScheduleError("missing weekly day_of_week")
        if not 0 <= job.schedule_day_of_week <= 6:
            raise ScheduleError(
                f"day_of_week must be 0-6, got {job.schedule_day_of_week}"
            )
        return WeeklySchedule(hour, minute, job.schedule_day_of_week)
    if kind == "cron":
        expression = (job.schedule_cron or "").strip()
        if not expression:
            raise ScheduleError("missing cron expression")
        shorthand = expression.startswith("@")
        if (not shorthand and len(expression.split()) != 5) or not croniter.is_valid(expression):
            raise ScheduleError(f"invalid cron expression {expression!r}")
        return CronSchedule(expression)
    raise ScheduleError(f"unknown schedule type {kind!r}")


def next_run(
    schedule: Schedule, now: datetime, tz: str | tzinfo | None = None
) -> datetime:
    """Next due instant strictly after ``now``, returned in UTC."""
    zone = resolve_timezone(tz)
    now_utc = _as_utc(now)
    local_now = now_utc.astimezone(zone)

    if isinstance(schedule, DailySchedule):
        candidate = _at(local_now, 0, schedule.hour, schedule.minute, zone)
        if candidate <= now_utc:
            candidate = _at(local_now, 1, schedule.hour, schedule.minute, zone)
        return candidate

    if isinstance(schedule, WeeklySchedule):
        current_dow = (local_now.weekday() + 1) % 7  # Python: Monday=0
        delta = (schedule.day_of_week - current_dow) % 7
        candidate = _at(local_now, delta, schedule.hour, schedule.minute, zone)
        if candidate <= now_utc:
            candidate = _at(local_now, delta + 7, schedule.hour, schedule.minute, zone)
        return candidate

    if isinstance(schedule, CronSchedule):
        try:
            following = croniter(schedule.expression, local_now).get_next(datetime)
        except (ValueError, KeyError) as e:
            raise ScheduleError(f"invalid cron expression {schedule.expression!r}: {e}") from e
        return _as_utc(following)

    raise ScheduleError(f"unknown schedule {schedule!r}")


def compute_next_run(
    job: Job, now: datetime | None = None, tz: str | tzinfo | None = None
) -> datetime:
    """Next due instant for ``job`` after ``now`` (default: current time)."""
    return next_run(parse_schedule(job), now or datetime.now(timezone.utc), tz)


def _at(local_now: datetime, days: int, hour: int, minute: int, zone: tzinfo) -> datetime:
    """Wall-clock ``hour:minute`` ``days`` after local_now's date, in UTC."""
    day = local_now.date() + timedelta(days=days)
    return datetime.combine(day, time(hour, minute), tzinfo=zone).astimezone(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
