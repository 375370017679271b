"""Job store for promptloop.

Two tables:
    jobs           — one row per scheduled job (written by the web app)
    run_histories  — append-only log of execution attempts

``JobStore.open(url)`` picks the backend: ``postgresql://`` URLs use
psycopg, anything else is a SQLite file path.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

from promptloop.core.cron.types import Job, RunHistory, utcnow

_JOB_COLUMNS = (
    "id, name, prompt, allow_web_search, schedule_type, schedule_time, "
    "schedule_day_of_week, schedule_cron, channel_type, channel_config, "
    "fail_count, enabled, next_run_at, locked_at"
)
_PG_RETURNING = ", ".join(f"jobs.{c.strip()}" for c in _JOB_COLUMNS.split(","))


class JobStore:
    """Raw-SQL access shared by both backends.

    Statements are written with ``?`` placeholders; backends translate them
    and adapt parameter values.
    """

    backend = ""

    @staticmethod
    def open(url: str) -> JobStore:
        if url.startswith(("postgresql://", "postgres://")):
            return PostgresJobStore(url)
        return SqliteJobStore(url.removeprefix("sqlite:///"))

    # ── Backend hooks ───────────────────────────────────────

    @contextmanager
    def _get_conn(self) -> Iterator[Any]:
        """Connection in autocommit-per-call mode for one-off statements."""
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Connection holding one transaction; commit on exit, roll back on error."""
        raise NotImplementedError

    def lock_next_due(self, conn: Any, now: datetime, stale_before: datetime) -> Job | None:
        """Lease the earliest due job inside ``conn``'s transaction, skipping locked rows."""
        raise NotImplementedError

    def _sql(self, sql: str) -> str:
        return sql

    def _param(self, value: Any) -> Any:
        return value

    def _execute(self, conn: Any, sql: str, params: tuple = ()) -> Any:
        return conn.execute(self._sql(sql), tuple(self._param(p) for p in params))

    # ════════════════════════════════════════════════════════════
    # LEASE / OUTCOME (called inside transaction())
    # ════════════════════════════════════════════════════════════

    def insert_history(self, conn: Any, history: RunHistory) -> None:
        self._execute(
            conn,
            """INSERT INTO run_histories
               (id, job_id, run_at, status, output_preview, error_message)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                history.id, history.job_id, history.run_at, history.status,
                history.output_preview, history.error_message,
            ),
        )

    def mark_success(self, conn: Any, job_id: str, next_run_at: datetime, now: datetime) -> None:
        self._execute(
            conn,
            """UPDATE jobs
               SET fail_count = 0, locked_at = NULL, next_run_at = ?, updated_at = ?
               WHERE id = ?""",
            (next_run_at, now, job_id),
        )

    def mark_failure(
        self, conn: Any, job_id: str, next_run_at: datetime, now: datetime, max_fails: int
    ) -> tuple[int, bool]:
        """Increment fail_count, disabling at ``max_fails``. Returns (fail_count, enabled)."""
        row = self._execute(
            conn,
            """UPDATE jobs
               SET fail_count = fail_count + 1,
                   locked_at = NULL,
                   next_run_at = ?,
                   enabled = CASE WHEN fail_count + 1 >= ? THEN false ELSE enabled END,
                   updated_at = ?
               WHERE id = ?
               RETURNING fail_count, enabled""",
            (next_run_at, max_fails, now, job_id),
        ).fetchall()
        if not row:
            return 0, False
        return int(row[0]["fail_count"]), bool(row[0]["enabled"])

    # ════════════════════════════════════════════════════════════
    # JOBS (seeding + operator commands)
    # ════════════════════════════════════════════════════════════

    def add_job(self, job: Job) -> None:
        now = utcnow()
        with self._get_conn() as conn:
            self._execute(
                conn,
                f"""INSERT INTO jobs ({_JOB_COLUMNS}, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    job.id, job.name, job.prompt, job.allow_web_search,
                    job.schedule_type, job.schedule_time, job.schedule_day_of_week,
                    job.schedule_cron, job.channel_type, job.channel_config,
                    job.fail_count, job.enabled, job.next_run_at, job.locked_at,
                    now, now,
                ),
            )
        logger.info(f"Job added: {job.id} ({job.schedule_type})")

    def get_job(self, job_id: str) -> Job | None:
        with self._get_conn() as conn:
            row = self._execute(
                conn, f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return Job(**dict(row)) if row else None

    def list_jobs(self) -> list[Job]:
        with self._get_conn() as conn:
            rows = self._execute(
                conn, f"SELECT {_JOB_COLUMNS} FROM jobs ORDER BY next_run_at"
            ).fetchall()
        return [Job(**dict(r)) for r in rows]

    def set_enabled(self, job_id: str, enabled: bool, next_run_at: datetime | None = None) -> bool:
        """External enable/disable. Enabling clears the failure streak."""
        now = utcnow()
        with self._get_conn() as conn:
            if enabled:
                cursor = self._execute(
                    conn,
                    """UPDATE jobs
                       SET enabled = true, fail_count = 0, locked_at = NULL,
                           next_run_at = COALESCE(?, next_run_at), updated_at = ?
                       WHERE id = ?""",
                    (next_run_at, now, job_id),
                )
            else:
                cursor = self._execute(
                    conn,
                    "UPDATE jobs SET enabled = false, updated_at = ? WHERE id = ?",
                    (now, job_id),
                )
        return cursor.rowcount > 0

    # ════════════════════════════════════════════════════════════
    # RUN HISTORY
    # ════════════════════════════════════════════════════════════

    def get_run_histories(self, job_id: str, limit: int = 50) -> list[RunHistory]:
        """Most recent attempts first."""
        with self._get_conn() as conn:
            rows = self._execute(
                conn,
                """SELECT id, job_id, run_at, status, output_preview, error_message
                   FROM run_histories WHERE job_id = ?
                   ORDER BY run_at DESC LIMIT ?""",
                (job_id, limit),
            ).fetchall()
        return [RunHistory(**dict(r)) for r in rows]


# ════════════════════════════════════════════════════════════
# SQLITE
# ════════════════════════════════════════════════════════════


class SqliteJobStore(JobStore):
    """SQLite backend for development and tests.

    SQLite has a single writer lock instead of row locks: a cycle transaction
    that cannot take it immediately reports no due job rather than waiting.
    """

    backend = "sqlite"

    _LOCK_SQL = f"""
        UPDATE jobs
        SET locked_at = ?, updated_at = ?
        WHERE id = (
            SELECT id FROM jobs
            WHERE enabled = true
              AND next_run_at <= ?
              AND (locked_at IS NULL OR locked_at < ?)
            ORDER BY next_run_at
            LIMIT 1
        )
        RETURNING {_JOB_COLUMNS}
    """

    def __init__(self, db_path: str = "data/promptloop.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"JobStore initialized: sqlite {db_path}")

    def _connect(self, timeout: float) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _get_conn(self):
        conn = self._connect(timeout=5.0)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        conn = self._connect(timeout=0)
        try:
            conn.execute("BEGIN")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SQLITE_SCHEMA)

    def _param(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return _iso(value)
        if isinstance(value, dict):
            return json.dumps(value)
        return value

    def lock_next_due(self, conn, now, stale_before):
        try:
            rows = self._execute(conn, self._LOCK_SQL, (now, now, now, stale_before)).fetchall()
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                logger.debug("Job table locked by another worker, skipping")
                return None
            raise
        return Job(**dict(rows[0])) if rows else None


def _iso(value: datetime) -> str:
    """UTC ISO-8601 with fixed microsecond width, so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


# ════════════════════════════════════════════════════════════
# POSTGRES
# ════════════════════════════════════════════════════════════


class PostgresJobStore(JobStore):
    """Postgres backend. Contention is resolved with ``FOR UPDATE SKIP LOCKED``."""

    backend = "postgres"

    _LOCK_SQL = f"""
        WITH candidate AS (
            SELECT id
            FROM jobs
            WHERE enabled = true
              AND next_run_at <= ?
              AND (locked_at IS NULL OR locked_at < ?)
            ORDER BY next_run_at
            LIMIT 1
            FOR UPDATE SKIP LOCKED
        )
        UPDATE jobs
        SET locked_at = ?, updated_at = ?
        FROM candidate
        WHERE jobs.id = candidate.id
        RETURNING {_PG_RETURNING}
    """

    def __init__(self, db_url: str):
        self.db_url = db_url
        self._init_db()
        logger.info("JobStore initialized: postgres")

    def _connect(self):
        import psycopg
        from psycopg.rows import dict_row

        return psycopg.connect(self.db_url, row_factory=dict_row, options="-c TimeZone=UTC")

    @contextmanager
    def _get_conn(self):
        # psycopg's connection context commits on success and rolls back on error
        with self._connect() as conn:
            yield conn

    @contextmanager
    def transaction(self):
        with self._connect() as conn:
            yield conn

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            for statement in _POSTGRES_SCHEMA.split(";"):
                if statement.strip():
                    conn.execute(statement)

    def _sql(self, sql: str) -> str:
        return sql.replace("?", "%s")

    def _param(self, value: Any) -> Any:
        if isinstance(value, dict):
            from psycopg.types.json import Jsonb

            return Jsonb(value)
        return value

    def lock_next_due(self, conn, now, stale_before):
        row = self._execute(conn, self._LOCK_SQL, (now, stale_before, now, now)).fetchone()
        return Job(**row) if row else None


# ════════════════════════════════════════════════════════════
# SCHEMA
# ════════════════════════════════════════════════════════════

_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    prompt TEXT NOT NULL,
    allow_web_search BOOLEAN NOT NULL DEFAULT false,
    schedule_type TEXT NOT NULL,
    schedule_time TEXT NOT NULL DEFAULT '',
    schedule_day_of_week INTEGER,
    schedule_cron TEXT,
    channel_type TEXT NOT NULL,
    channel_config TEXT NOT NULL DEFAULT '{}',
    fail_count INTEGER NOT NULL DEFAULT 0,
    enabled BOOLEAN NOT NULL DEFAULT true,
    next_run_at TEXT NOT NULL,
    locked_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_due ON jobs(enabled, next_run_at);

CREATE TABLE IF NOT EXISTS run_histories (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    run_at TEXT NOT NULL,
    status TEXT NOT NULL,
    output_preview TEXT,
    error_message TEXT,
    FOREIGN KEY (job_id) REFERENCES jobs(id)
);

CREATE INDEX IF NOT EXISTS idx_run_histories_job
    ON run_histories(job_id, run_at DESC);
"""

_POSTGRES_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    prompt TEXT NOT NULL,
    allow_web_search BOOLEAN NOT NULL DEFAULT false,
    schedule_type TEXT NOT NULL,
    schedule_time TEXT NOT NULL DEFAULT '',
    schedule_day_of_week INTEGER,
    schedule_cron TEXT,
    channel_type TEXT NOT NULL,
    channel_config JSONB NOT NULL DEFAULT '{}'::jsonb,
    fail_count INTEGER NOT NULL DEFAULT 0,
    enabled BOOLEAN NOT NULL DEFAULT true,
    next_run_at TIMESTAMPTZ NOT NULL,
    locked_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_jobs_due ON jobs(enabled, next_run_at);

CREATE TABLE IF NOT EXISTS run_histories (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    run_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    status TEXT NOT NULL,
    output_preview TEXT,
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_run_histories_job
    ON run_histories(job_id, run_at DESC)
"""
