"""Tests for promptloop.core.cron.schedule."""

from datetime import datetime, timezone

import pytest

from promptloop.core.cron.schedule import (
    CronSchedule,
    DailySchedule,
    WeeklySchedule,
    compute_next_run,
    parse_schedule,
    parse_time_of_day,
    resolve_timezone,
)
from promptloop.core.errors import ConfigError, ScheduleError


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ── Time of day ───────────────────────────────────────────


@pytest.mark.parametrize("raw, expected", [("09:00", (9, 0)), ("9:05", (9, 5)), ("23:59", (23, 59))])
def test_parse_time_of_day(raw, expected):
    assert parse_time_of_day(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "24:00", "09:60", "9:5", "0900", "09:00:00", "ab:cd"])
def test_parse_time_of_day_invalid(raw):
    with pytest.raises(ScheduleError):
        parse_time_of_day(raw)


# ── Daily ─────────────────────────────────────────────────


def test_daily_later_today(make_job):
    job = make_job(schedule_time="09:00")
    assert compute_next_run(job, _utc(2026, 10, 17, 8, 0)) == _utc(2026, 10, 17, 9, 0)


def test_daily_already_passed(make_job):
    job = make_job(schedule_time="09:00")
    assert compute_next_run(job, _utc(2026, 10, 17, 10, 0)) == _utc(2026, 10, 18, 9, 0)


def test_daily_exactly_now_is_tomorrow(make_job):
    """Next run is strictly after now."""
    job = make_job(schedule_time="09:00")
    assert compute_next_run(job, _utc(2026, 10, 17, 9, 0)) == _utc(2026, 10, 18, 9, 0)


def test_daily_bad_time(make_job):
    with pytest.raises(ScheduleError):
        compute_next_run(make_job(schedule_time="25:00"), _utc(2026, 10, 17, 8, 0))


# ── Weekly (0=Sunday) ─────────────────────────────────────


def test_weekly_monday_to_wednesday(make_job):
    job = make_job(schedule_type="weekly", schedule_time="09:00", schedule_day_of_week=3)
    monday = _utc(2026, 10, 19, 8, 0)
    assert compute_next_run(job, monday) == _utc(2026, 10, 21, 9, 0)


def test_weekly_same_day_before_time(make_job):
    job = make_job(schedule_type="weekly", schedule_time="09:00", schedule_day_of_week=1)
    assert compute_next_run(job, _utc(2026, 10, 19, 8, 0)) == _utc(2026, 10, 19, 9, 0)


def test_weekly_same_day_after_time_is_next_week(make_job):
    job = make_job(schedule_type="weekly", schedule_time="09:00", schedule_day_of_week=1)
    assert compute_next_run(job, _utc(2026, 10, 19, 10, 0)) == _utc(2026, 10, 26, 9, 0)


def test_weekly_sunday_is_zero(make_job):
    job = make_job(schedule_type="weekly", schedule_time="18:30", schedule_day_of_week=0)
    saturday = _utc(2026, 10, 17, 12, 0)
    assert compute_next_run(job, saturday) == _utc(2026, 10, 18, 18, 30)


@pytest.mark.parametrize("dow", [None, -1, 7])
def test_weekly_bad_day(make_job, dow):
    job = make_job(schedule_type="weekly", schedule_day_of_week=dow)
    with pytest.raises(ScheduleError):
        parse_schedule(job)


# ── Cron ──────────────────────────────────────────────────


def test_cron_every_fifteen_minutes(make_job):
    job = make_job(schedule_type="cron", schedule_cron="*/15 * * * *")
    assert compute_next_run(job, _utc(2026, 10, 17, 10, 7)) == _utc(2026, 10, 17, 10, 15)


def test_cron_weekday_numbering(make_job):
    """Cron day-of-week 1 is Monday."""
    job = make_job(schedule_type="cron", schedule_cron="0 9 * * 1")
    assert compute_next_run(job, _utc(2026, 10, 17, 9, 0)) == _utc(2026, 10, 19, 9, 0)


def test_cron_strictly_after_now(make_job):
    job = make_job(schedule_type="cron", schedule_cron="0 9 * * *")
    assert compute_next_run(job, _utc(2026, 10, 17, 9, 0)) == _utc(2026, 10, 18, 9, 0)


@pytest.mark.parametrize("expr", [None, "", "* * *", "61 * * * *", "0 9 * * * *", "not a cron", "@fortnightly"])
def test_cron_invalid(make_job, expr):
    job = make_job(schedule_type="cron", schedule_cron=expr)
    with pytest.raises(ScheduleError):
        compute_next_run(job, _utc(2026, 10, 17, 9, 0))


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("@hourly", _utc(2026, 10, 17, 10, 0)),
        ("@daily", _utc(2026, 10, 18, 0, 0)),
        ("@weekly", _utc(2026, 10, 18, 0, 0)),
    ],
)
def test_cron_shorthands(make_job, expr, expected):
    job = make_job(schedule_type="cron", schedule_cron=expr)
    assert compute_next_run(job, _utc(2026, 10, 17, 9, 0)) == expected


# ── Variants / unknown kind ───────────────────────────────


def test_parse_schedule_variants(make_job):
    assert parse_schedule(make_job(schedule_time="07:30")) == DailySchedule(7, 30)
    assert parse_schedule(
        make_job(schedule_type="weekly", schedule_time="07:30", schedule_day_of_week=5)
    ) == WeeklySchedule(7, 30, 5)
    assert parse_schedule(
        make_job(schedule_type="cron", schedule_cron=" 0 * * * * ")
    ) == CronSchedule("0 * * * *")


def test_unknown_schedule_type(make_job):
    with pytest.raises(ScheduleError, match="unknown schedule type"):
        compute_next_run(make_job(schedule_type="hourly"), _utc(2026, 10, 17, 9, 0))


# ── Time zones ────────────────────────────────────────────


def test_daily_in_zone(make_job):
    """09:00 in Istanbul (UTC+3) is 06:00 UTC."""
    job = make_job(schedule_time="09:00")
    now = _utc(2026, 10, 17, 5, 0)
    assert compute_next_run(job, now, "Europe/Istanbul") == _utc(2026, 10, 17, 6, 0)


def test_daily_in_zone_across_local_midnight(make_job):
    job = make_job(schedule_time="01:00")
    # 22:30 UTC is already 01:30 the next day in Istanbul
    now = _utc(2026, 10, 17, 22, 30)
    assert compute_next_run(job, now, "Europe/Istanbul") == _utc(2026, 10, 18, 22, 0)


def test_result_is_utc(make_job):
    result = compute_next_run(make_job(), _utc(2026, 10, 17, 8, 0), "Europe/Istanbul")
    assert result.utcoffset().total_seconds() == 0


def test_resolve_timezone():
    assert resolve_timezone(None) is timezone.utc
    assert resolve_timezone("utc") is timezone.utc
    with pytest.raises(ConfigError):
        resolve_timezone("Mars/Olympus_Mons")
