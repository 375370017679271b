"""JobQueue — lease due jobs and commit their outcomes in one transaction."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator

from loguru import logger

from promptloop.core.cron.types import Job, RunHistory, RunOutcome, utcnow
from promptloop.storage.store import JobStore


@dataclass(frozen=True)
class CommitResult:
    history: RunHistory
    fail_count: int
    enabled: bool

    @property
    def disabled(self) -> bool:
        """True when this commit switched the job off."""
        return self.history.status == "fail" and not self.enabled


class QueueTransaction:
    """One acquire-execute-commit cycle bound to a single store transaction.

    The row lease taken by ``acquire_next_due`` is held until the surrounding
    ``JobQueue.transaction()`` block exits.
    """

    def __init__(self, queue: JobQueue, conn: Any):
        self._queue = queue
        self._conn = conn
        self._leased: set[str] = set()

    def acquire_next_due(self) -> Job | None:
        """Lease the earliest due job, or None when nothing is due or free."""
        now = self._queue.clock()
        stale_before = now - self._queue.stale_after
        job = self._queue.store.lock_next_due(self._conn, now, stale_before)
        if job is None:
            return None
        self._leased.add(job.id)
        logger.info(f"Job leased: {job.id} ({job.name}) due {job.next_run_at.isoformat()}")
        return job

    def commit_outcome(self, job: Job, outcome: RunOutcome, next_due: datetime) -> CommitResult:
        """Record the attempt and update the job's failure streak, lease and next run."""
        if job.id not in self._leased:
            raise ValueError(f"job {job.id} was not leased in this transaction")

        store = self._queue.store
        now = self._queue.clock()
        history = RunHistory(
            id=str(uuid.uuid4()),
            job_id=job.id,
            run_at=now,
            status=outcome.status,
            output_preview=outcome.output_preview,
            error_message=outcome.error_message,
        )
        store.insert_history(self._conn, history)

        if outcome.ok:
            store.mark_success(self._conn, job.id, next_due, now)
            fail_count, enabled = 0, True
        else:
            fail_count, enabled = store.mark_failure(
                self._conn, job.id, next_due, now, self._queue.max_failures
            )
            if not enabled:
                logger.warning(
                    f"Job {job.id} disabled after {fail_count} consecutive failures"
                )

        self._leased.discard(job.id)
        return CommitResult(history=history, fail_count=fail_count, enabled=enabled)


class JobQueue:
    """Leasing front-end over a JobStore.

    Any number of processes may share one store; the store's non-blocking
    row exclusion is the only coordination between them.
    """

    def __init__(
        self,
        store: JobStore,
        stale_after: timedelta = timedelta(minutes=10),
        max_failures: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.stale_after = stale_after
        self.max_failures = max_failures
        self.clock = clock

    @classmethod
    def from_config(cls, config, store: JobStore | None = None, **kwargs) -> JobQueue:
        return cls(
            store or JobStore.open(config.database.url),
            stale_after=timedelta(minutes=config.lock_stale_minutes),
            max_failures=config.worker.max_fails_before_disable,
            **kwargs,
        )

    @contextmanager
    def transaction(self) -> Iterator[QueueTransaction]:
        """Open a cycle transaction. Leaving the block with an exception rolls back."""
        with self.store.transaction() as conn:
            yield QueueTransaction(self, conn)
