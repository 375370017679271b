"""Persistent job store and leasing queue."""

from promptloop.storage.queue import CommitResult, JobQueue, QueueTransaction
from promptloop.storage.store import JobStore, PostgresJobStore, SqliteJobStore

__all__ = [
    "CommitResult",
    "JobQueue",
    "JobStore",
    "PostgresJobStore",
    "QueueTransaction",
    "SqliteJobStore",
]
