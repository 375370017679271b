"""Background execution loop."""

from promptloop.core.background.worker import DrainStats, JobWorker

__all__ = ["DrainStats", "JobWorker"]
