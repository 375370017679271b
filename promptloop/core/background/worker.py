"""JobWorker — periodic acquire-execute-commit loop."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from promptloop.core.cron.schedule import compute_next_run, resolve_timezone
from promptloop.core.cron.types import Job, RunHistory, RunOutcome, utcnow
from promptloop.core.errors import JobError, ScheduleError

if TYPE_CHECKING:
    from promptloop.core.channels.dispatcher import DeliveryDispatcher
    from promptloop.core.config.schema import Config
    from promptloop.core.providers.base import BaseGenerationClient
    from promptloop.storage.queue import CommitResult, JobQueue


@dataclass
class DrainStats:
    processed: int = 0
    success: int = 0
    fail: int = 0
    disabled: int = 0

    def record(self, result: CommitResult) -> None:
        self.processed += 1
        if result.history.status == "success":
            self.success += 1
        else:
            self.fail += 1
        if result.disabled:
            self.disabled += 1


class JobWorker:
    """Runs at most one job per tick.

    Each cycle leases the earliest due job, generates its output, delivers it,
    computes the next run and commits the outcome, all inside one store
    transaction. Any error while generating or delivering is recorded on
    the job; a store error rolls the transaction back and leaves the job due.
    """

    def __init__(
        self,
        queue: JobQueue,
        generator: BaseGenerationClient,
        dispatcher: DeliveryDispatcher,
        interval_s: float = 10,
        retry_delay: timedelta = timedelta(minutes=10),
        tz: str | tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.queue = queue
        self.generator = generator
        self.dispatcher = dispatcher
        self.interval_s = interval_s
        self.retry_delay = retry_delay
        self.tz = resolve_timezone(tz)
        self.clock = clock or queue.clock or utcnow
        self._scheduler: AsyncIOScheduler | None = None

    @classmethod
    def from_config(cls, config: Config, queue: JobQueue | None = None) -> JobWorker:
        from promptloop.core.channels.dispatcher import DeliveryDispatcher
        from promptloop.core.providers.generation import GenerationClient
        from promptloop.core.vault import SecretVault
        from promptloop.storage.queue import JobQueue

        tz = resolve_timezone(config.worker.timezone)
        return cls(
            queue=queue or JobQueue.from_config(config),
            generator=GenerationClient.from_config(config),
            dispatcher=DeliveryDispatcher(
                SecretVault.from_config(config),
                timeout_s=config.delivery.timeout_s,
                tz=tz,
            ),
            interval_s=config.worker.interval_s,
            retry_delay=timedelta(minutes=config.worker.retry_delay_minutes),
            tz=tz,
        )

    # ── Cycle ───────────────────────────────────────────────

    async def run_once(self) -> RunHistory | None:
        """One acquire-execute-commit cycle. Returns the history row, or None if idle."""
        result = await self._cycle()
        return result.history if result else None

    async def _cycle(self) -> CommitResult | None:
        with self.queue.transaction() as tx:
            job = tx.acquire_next_due()
            if job is None:
                logger.debug("No due job")
                return None

            outcome = await self._execute(job)

            now = self.clock()
            try:
                next_due = compute_next_run(job, now, self.tz)
            except ScheduleError as e:
                logger.warning(f"Job {job.id} schedule error: {e}")
                outcome = RunOutcome.failure(f"schedule calc error: {e}")
                next_due = now + self.retry_delay

            return tx.commit_outcome(job, outcome, next_due)

    async def _execute(self, job: Job) -> RunOutcome:
        try:
            text = await self.generator.generate(job.prompt, allow_web_search=job.allow_web_search)
            await self.dispatcher.deliver(job, text, now=self.clock())
        except JobError as e:
            logger.warning(f"Job {job.id} failed: {e}")
            return RunOutcome.failure(e)
        except Exception as e:
            logger.exception(f"Job {job.id} failed unexpectedly: {e}")
            return RunOutcome.failure(f"{type(e).__name__}: {e}")
        logger.info(f"Job {job.id} succeeded ({len(text)} chars)")
        return RunOutcome.success(text)

    async def tick(self) -> None:
        """Scheduler entry point. Never raises."""
        try:
            await self.run_once()
        except Exception as e:
            logger.error(f"Worker cycle error: {e}")

    async def drain(
        self, max_jobs: int | None = None, time_budget_s: float | None = None
    ) -> DrainStats:
        """Process due jobs until none remain, ``max_jobs`` ran, or the budget is spent."""
        stats = DrainStats()
        started = time.monotonic()
        while max_jobs is None or stats.processed < max_jobs:
            if time_budget_s is not None and time.monotonic() - started >= time_budget_s:
                logger.info("Drain stopped: time budget exhausted")
                break
            try:
                result = await self._cycle()
            except Exception as e:
                logger.error(f"Worker cycle error: {e}")
                break
            if result is None:
                break
            stats.record(result)
        logger.info(
            f"Drain finished: processed={stats.processed} success={stats.success} "
            f"fail={stats.fail} disabled={stats.disabled}"
        )
        return stats

    # ── Loop ────────────────────────────────────────────────

    def start(self) -> None:
        """Schedule ``tick`` every ``interval_s`` seconds, starting now."""
        if self._scheduler and self._scheduler.running:
            return
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )
        self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self.interval_s),
            id="promptloop-worker",
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(f"JobWorker started (interval={self.interval_s}s)")

    def stop(self) -> None:
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("JobWorker stopped")
        self._scheduler = None

    async def run_forever(self) -> None:
        """Start the loop and block until cancelled."""
        self.start()
        try:
            await asyncio.Event().wait()
        finally:
            self.stop()
