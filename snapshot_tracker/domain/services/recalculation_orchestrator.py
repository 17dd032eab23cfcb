"""
RECALCULATION JOB ORCHESTRATOR
Submits bulk snapshot recalculations and polls them to a terminal state.

RESPONSIBILITIES:
- One tracked job per portfolio at a time (reject or supersede, by policy)
- Warm-up delay, then polling with backoff and a hard attempt cap
- Exactly one terminal JobEvent per job, then the job is forgotten

Status flow:
    REQUESTED -> PROCESSING -> {STARTED | IN_PROGRESS} -> {COMPLETED | FAILED}
plus the terminal fallbacks UNKNOWN, TIMED_OUT and ERRORED.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from snapshot_tracker.domain.errors import (
    JobAlreadyRunningError,
    JobFailure,
    JobUnknown,
    PollTimeoutError,
    SnapshotTrackerError,
    TransportError,
    ValidationError,
)
from snapshot_tracker.domain.models import (
    JobEvent,
    JobStatus,
    RecalculationJob,
    StatusSnapshot,
    SubmissionReceipt,
    can_transition,
)

logger = logging.getLogger(__name__)

JobListener = Callable[[JobEvent], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[None]]


class RecalculationSource(Protocol):
    async def submit_recalculation(
        self,
        portfolio_id: str,
        account_id: str,
        snapshot_date: Optional[date] = None,
    ) -> SubmissionReceipt:
        ...

    async def get_job_status(self, tracking_id: str) -> StatusSnapshot:
        ...


class ConcurrencyPolicy(str, Enum):
    """What to do when a portfolio already has a job in flight"""
    REJECT = "reject"
    SUPERSEDE = "supersede"


@dataclass(frozen=True)
class PollPolicy:
    warmup_seconds: float = 2.0
    interval_seconds: float = 3.0
    backoff_factor: float = 1.5
    max_interval_seconds: float = 30.0
    max_attempts: int = 40
    max_consecutive_errors: int = 3

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1")
        if self.max_consecutive_errors < 1:
            raise ValidationError("max_consecutive_errors must be at least 1")
        if self.backoff_factor < 1:
            raise ValidationError("backoff_factor must be >= 1")

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before poll number `attempt` (0-based)"""
        if attempt == 0:
            return self.warmup_seconds
        delay = self.interval_seconds * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_interval_seconds)


class RecalculationOrchestrator:
    def __init__(
        self,
        source: RecalculationSource,
        poll_policy: Optional[PollPolicy] = None,
        concurrency: ConcurrencyPolicy = ConcurrencyPolicy.REJECT,
        listeners: Optional[List[JobListener]] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._source = source
        self._policy = poll_policy or PollPolicy()
        self._concurrency = ConcurrencyPolicy(concurrency)
        self._listeners: List[JobListener] = list(listeners or [])
        self._sleep = sleep
        self._jobs: Dict[str, RecalculationJob] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._results: Dict[str, asyncio.Future] = {}
        self._waiters: Dict[str, int] = {}
        self._closed = False

    @property
    def concurrency(self) -> ConcurrencyPolicy:
        return self._concurrency

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: JobListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def active_jobs(self) -> Dict[str, RecalculationJob]:
        return dict(self._jobs)

    def get_job(self, portfolio_id: str) -> Optional[RecalculationJob]:
        return self._jobs.get(portfolio_id)

    # ------------------------------------------------------------------
    # SUBMIT / POLL
    # ------------------------------------------------------------------

    async def submit(
        self,
        portfolio_id: str,
        account_id: str,
        snapshot_date: Optional[date] = None,
    ) -> RecalculationJob:
        """
        Submit a bulk recalculation and start tracking it.
        snapshot_date limits the recalculation to a single date.
        """
        if self._closed:
            raise ValidationError("Orchestrator is closed")

        # Another submit may claim the slot while we wait for a cancel
        while portfolio_id in self._jobs:
            existing = self._jobs[portfolio_id]
            if self._concurrency == ConcurrencyPolicy.REJECT:
                raise JobAlreadyRunningError(portfolio_id, existing.tracking_id or "pending")
            logger.info(
                "Superseding recalculation %s for portfolio %s",
                existing.tracking_id, portfolio_id,
            )
            await self.cancel(portfolio_id)

        # Reserve the slot before awaiting so a concurrent submit sees it
        job = RecalculationJob(portfolio_id=portfolio_id, account_id=account_id)
        self._jobs[portfolio_id] = job
        try:
            receipt = await self._source.submit_recalculation(
                portfolio_id, account_id, snapshot_date=snapshot_date
            )
        except BaseException:
            if self._jobs.get(portfolio_id) is job:
                del self._jobs[portfolio_id]
            raise

        job.tracking_id = receipt.tracking_id
        job.estimated_duration = receipt.estimated_duration
        job.date_range = receipt.date_range
        job.advance(JobStatus.PROCESSING)

        if self._jobs.get(portfolio_id) is not job:
            logger.info("Recalculation %s superseded before polling started", job.tracking_id)
            return job

        self._results[job.tracking_id] = asyncio.get_running_loop().create_future()
        self._tasks[portfolio_id] = asyncio.create_task(self._track(job))
        logger.info(
            "Recalculation %s submitted for portfolio %s (estimated %s)",
            job.tracking_id, portfolio_id, job.estimated_duration or "n/a",
        )
        return job

    async def poll(self, tracking_id: str) -> StatusSnapshot:
        return await self._source.get_job_status(tracking_id)

    async def _track(self, job: RecalculationJob) -> None:
        policy = self._policy
        consecutive_errors = 0
        while True:
            if job.attempts >= policy.max_attempts:
                await self._finish(
                    job,
                    JobStatus.TIMED_OUT,
                    PollTimeoutError(job.tracking_id, job.attempts, job.status.value),
                )
                return

            await self._sleep(policy.delay_before(job.attempts))
            job.attempts += 1

            try:
                snapshot = await self.poll(job.tracking_id)
            except TransportError as exc:
                consecutive_errors += 1
                logger.warning(
                    "Poll %d for %s failed (%d in a row): %s",
                    job.attempts, job.tracking_id, consecutive_errors, exc,
                )
                if consecutive_errors >= policy.max_consecutive_errors:
                    await self._finish(job, JobStatus.ERRORED, exc)
                    return
                continue
            consecutive_errors = 0

            status = snapshot.status
            if status.is_pending:
                if can_transition(job.status, status):
                    job.advance(status)
                elif status != job.status:
                    logger.debug(
                        "Ignoring out-of-order status %s for %s (at %s)",
                        status.value, job.tracking_id, job.status.value,
                    )
                continue

            if status == JobStatus.COMPLETED:
                job.summary = snapshot.summary
                await self._finish(job, JobStatus.COMPLETED)
            elif status == JobStatus.FAILED:
                await self._finish(job, JobStatus.FAILED, JobFailure(job.tracking_id, snapshot.message))
            else:
                await self._finish(job, JobStatus.UNKNOWN, JobUnknown(job.tracking_id, snapshot.raw_status))
            return

    async def _finish(
        self,
        job: RecalculationJob,
        status: JobStatus,
        error: Optional[SnapshotTrackerError] = None,
    ) -> None:
        job.advance(status)
        job.error = error

        if self._jobs.get(job.portfolio_id) is job:
            del self._jobs[job.portfolio_id]
            self._tasks.pop(job.portfolio_id, None)

        event = JobEvent(
            tracking_id=job.tracking_id,
            portfolio_id=job.portfolio_id,
            status=status,
            summary=job.summary,
            error=error,
            attempts=job.attempts,
        )

        if status == JobStatus.COMPLETED:
            summary = job.summary
            logger.info(
                "Recalculation %s completed: %s snapshots across %s dates",
                job.tracking_id,
                summary.total_snapshots if summary else "?",
                summary.successful_dates if summary else "?",
            )
        elif status in (JobStatus.FAILED, JobStatus.ERRORED):
            logger.error("Recalculation %s ended %s: %s", job.tracking_id, status.value, error)
        else:
            logger.warning("Recalculation %s ended %s: %s", job.tracking_id, status.value, error)

        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception("Recalculation listener failed for %s", job.tracking_id)

        future = self._results.get(job.tracking_id)
        if future is not None and not future.done():
            future.set_result(event)
        # Nobody waiting: the listeners were the only consumers
        if not self._waiters.get(job.tracking_id):
            self._results.pop(job.tracking_id, None)

    # ------------------------------------------------------------------
    # WAIT / CANCEL / CLOSE
    # ------------------------------------------------------------------

    async def wait(self, tracking_id: str, raise_on_failure: bool = False) -> JobEvent:
        """
        Wait for the terminal event of a job and release it.

        Call before the job finishes: an event nobody is waiting for is
        delivered to listeners and then dropped.
        Raises asyncio.CancelledError if the job was cancelled or superseded.
        """
        future = self._results.get(tracking_id)
        if future is None:
            raise ValidationError(f"No tracked recalculation with id {tracking_id}")
        self._waiters[tracking_id] = self._waiters.get(tracking_id, 0) + 1
        try:
            event = await asyncio.shield(future)
        finally:
            remaining = self._waiters.pop(tracking_id) - 1
            if remaining:
                self._waiters[tracking_id] = remaining
            if future.done():
                self._results.pop(tracking_id, None)
        if raise_on_failure and event.error is not None:
            raise event.error
        return event

    async def cancel(self, portfolio_id: str) -> bool:
        job = self._jobs.pop(portfolio_id, None)
        task = self._tasks.pop(portfolio_id, None)
        if job is None:
            return False
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if job.tracking_id:
            future = self._results.pop(job.tracking_id, None)
            if future is not None and not future.done():
                future.cancel()
        logger.info("Stopped tracking recalculation %s for portfolio %s", job.tracking_id, portfolio_id)
        return True

    async def close(self) -> None:
        self._closed = True
        for portfolio_id in list(self._jobs):
            await self.cancel(portfolio_id)
        for future in self._results.values():
            if not future.done():
                future.cancel()
        self._results.clear()
