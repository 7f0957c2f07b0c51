"""In-process background job engine."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID, uuid4

from pydantic import ValidationError

from background_jobs.backoff import next_run_at
from background_jobs.config import BackgroundJobsConfig
from background_jobs.dead_letters import DeadLetterBuffer
from background_jobs.errors import (
    HandlerError,
    MissingHandlersError,
    NoHandlerError,
    SubmissionError,
)
from background_jobs.models import Job, JobOptions, JobStatus, type_tag, utcnow
from background_jobs.queue import TypeQueue
from background_jobs.registry import JobRegistry, job_registry


class JobEngine:
    """
    Runs submitted jobs in the background of the current event loop.

    Jobs are grouped into one queue per job type. A dispatcher loop picks the
    highest priority ready job across all queues, as long as fewer than
    ``config.concurrency`` jobs are processing, and runs its handler as an
    asyncio task. Failed jobs are retried with backoff until their retry
    budget is spent, then dropped into the dead letter buffer.

    The dispatcher wakes on every submission, every finished job and on a
    periodic tick. All engine state is touched from the event loop thread
    only, between awaits, so it needs no lock.

    Example:
        ```python
        engine = JobEngine(BackgroundJobsConfig(concurrency=5))

        @engine.registry.handler("send_email")
        async def send_email(payload, job):
            ...

        await engine.start()
        job_id = engine.submit("send_email", {"to": "a@b.c"}, retries=3)
        ...
        await engine.stop()
        ```
    """

    def __init__(
        self,
        config: Optional[BackgroundJobsConfig] = None,
        registry: Optional[JobRegistry] = None,
        logger: Optional[logging.Logger] = None,
        dead_letters: Optional[DeadLetterBuffer] = None,
    ):
        self.config = config or BackgroundJobsConfig()
        self.registry = registry if registry is not None else job_registry
        self.logger = logger or logging.getLogger(__name__)
        self.dead_letters = (
            dead_letters
            if dead_letters is not None
            else DeadLetterBuffer(self.config.dead_letter_size)
        )

        self._queues: Dict[str, TypeQueue] = {}
        self._processing: Dict[UUID, Job] = {}
        self._tasks: set[asyncio.Task] = set()
        self._processed = 0
        self._failed = 0
        self._running = False
        self._wakeup = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None

    # Registration and submission

    def register_handler(self, job_type: str, handler: Callable) -> Callable:
        """Bind a handler to a job type on this engine's registry."""
        return self.registry.register(job_type, handler)

    def submit(
        self,
        job_type: str,
        payload: Any = None,
        options: Union[JobOptions, Dict[str, Any], None] = None,
        **kwargs: Any,
    ) -> UUID:
        """
        Queue a job and return its id.

        Options may be given as a JobOptions, a dict, keyword arguments, or a
        mix (keywords win). Recognized options: priority, delay (seconds or
        timedelta), retries, tenant_tag.

        Raises:
            SubmissionError: If the job type is empty or the options are invalid
        """
        job_type = type_tag(job_type)
        if not job_type:
            raise SubmissionError("Job type must be a non-empty string")

        if isinstance(options, JobOptions):
            options = options.model_dump()
        try:
            opts = JobOptions(**{**(options or {}), **kwargs})
        except ValidationError as e:
            raise SubmissionError(
                f"Invalid options for job type {job_type}: {e}", errors=e.errors()
            ) from e

        now = utcnow()
        try:
            run_at = now + timedelta(seconds=opts.delay)
        except (OverflowError, ValueError) as e:
            raise SubmissionError(
                f"Invalid options for job type {job_type}: delay {opts.delay} is out of range"
            ) from e

        job = Job(
            id=uuid4(),
            type=job_type,
            payload=payload,
            run_at=run_at,
            priority=opts.priority,
            retries=opts.retries,
            tenant_tag=opts.tenant_tag,
            created_at=now,
        )

        queue = self._queues.get(job_type)
        if queue is None:
            queue = self._queues[job_type] = TypeQueue(job_type)
        queue.insert(job)

        self.logger.debug(f"Job {job.id} ({job_type}) added to queue")
        self._wake()
        return job.id

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, required_types: Optional[Iterable[str]] = None) -> None:
        """
        Start the dispatcher loop.

        Args:
            required_types: Job types that must have a handler. Combined with
                config.required_job_types.

        Raises:
            MissingHandlersError: If any required job type has no handler
        """
        if self._running:
            self.logger.warning("Job engine is already running")
            return

        required = list(self.config.required_job_types) + list(required_types or [])
        missing = self.registry.missing(required)
        if missing:
            raise MissingHandlersError(missing)

        self._running = True
        self._wakeup.set()
        self._loop_task = asyncio.create_task(self._run())
        self.logger.info(
            f"Job engine started with concurrency {self.config.concurrency}"
        )

    async def stop(self) -> None:
        """
        Stop dispatching.

        Jobs already processing run to completion and record their outcome;
        pending jobs stay queued until the next start().
        """
        if not self._running:
            self.logger.warning("Job engine is not running")
            return

        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        self.logger.info("Job engine stopped")

    async def drain(self, poll_interval: float = 0.01) -> None:
        """Wait until every queue is empty. Never returns while a handler hangs."""
        while any(len(queue) for queue in self._queues.values()):
            await asyncio.sleep(poll_interval)

    async def __aenter__(self) -> "JobEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._running:
            await self.stop()

    # Dispatcher

    def _wake(self) -> None:
        self._wakeup.set()

    async def _run(self) -> None:
        """Main dispatcher loop."""
        while self._running:
            self._wakeup.clear()
            timeout = self.config.tick_interval_seconds
            try:
                next_due = self._dispatch()
                if next_due is not None:
                    timeout = min(timeout, next_due)
            except Exception as e:
                self.logger.error(f"Unexpected error in dispatch cycle: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

    def _dispatch(self) -> Optional[float]:
        """
        Start ready jobs until the concurrency limit is reached.

        Returns the number of seconds until the next delayed job becomes
        ready when dispatching stopped for lack of ready jobs, else None.
        """
        while self._running and len(self._processing) < self.config.concurrency:
            now = utcnow()
            job = self._select_next(now)
            if job is None:
                return self._seconds_until_next_due(now)

            handler = self.registry.get_handler(job.type)
            if handler is None:
                self._fail_without_handler(job)
                continue

            self._start_job(job, handler)
        return None

    def _select_next(self, now: datetime) -> Optional[Job]:
        """Highest priority ready job; ties go to the queue scanned first."""
        selected = None
        for queue in self._queues.values():
            candidate = queue.next_ready(now)
            if candidate is not None and (
                selected is None or candidate.priority > selected.priority
            ):
                selected = candidate
        return selected

    def _seconds_until_next_due(self, now: datetime) -> Optional[float]:
        next_run_at_ = None
        for queue in self._queues.values():
            for job in queue:
                if job.status == JobStatus.PENDING and (
                    next_run_at_ is None or job.run_at < next_run_at_
                ):
                    next_run_at_ = job.run_at
        if next_run_at_ is None:
            return None
        return max(0.0, (next_run_at_ - now).total_seconds())

    def _start_job(self, job: Job, handler: Callable) -> None:
        job.status = JobStatus.PROCESSING
        job.started_at = utcnow()
        job.attempts += 1
        self._processing[job.id] = job

        self.logger.debug(
            f"Processing job {job.id} ({job.type}, attempt {job.attempts})"
        )
        task = asyncio.create_task(self._execute(job, handler), name=f"job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, job: Job, handler: Callable) -> None:
        """Run one attempt of a job and record its outcome."""
        try:
            result = handler(job.payload, job)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, BaseException):
                raise HandlerError(job.id, job.type, result)
        except asyncio.CancelledError:
            # Not a failure: the attempt did not finish.
            self._processing.pop(job.id, None)
            job.status = JobStatus.PENDING
            self.logger.warning(f"Job {job.id} ({job.type}) was cancelled while processing")
            raise
        except (KeyboardInterrupt, SystemExit) as e:
            # Exit requests still reach the host, but the attempt is recorded first.
            self._processing.pop(job.id, None)
            self.logger.error(
                f"Job {job.id} ({job.type}) interrupted by {type(e).__name__} "
                f"on attempt {job.attempts}"
            )
            self._record_outcome(job, self._on_failure, e)
            self._wake()
            raise
        except Exception as e:
            self._processing.pop(job.id, None)
            self.logger.error(
                f"Job {job.id} ({job.type}) failed on attempt {job.attempts}: {e}",
                exc_info=True,
            )
            self._record_outcome(job, self._on_failure, e)
        else:
            self._processing.pop(job.id, None)
            self._record_outcome(job, self._on_success)
        self._wake()

    def _record_outcome(self, job: Job, outcome: Callable, *args: Any) -> None:
        """Apply an outcome, failing the job if the bookkeeping itself errors."""
        try:
            outcome(job, *args)
        except Exception as e:
            self.logger.error(
                f"Could not record outcome of job {job.id} ({job.type}): {e}",
                exc_info=True,
            )
            job.last_error = str(e) or type(e).__name__
            self._mark_failed(job, utcnow())

    def _on_success(self, job: Job) -> None:
        job.status = JobStatus.COMPLETED
        job.completed_at = utcnow()
        self._evict(job)
        self._processed += 1

        duration = (job.completed_at - job.created_at).total_seconds()
        self.logger.info(f"Job {job.id} ({job.type}) completed in {duration:.3f}s")

    def _on_failure(self, job: Job, error: BaseException) -> None:
        job.last_error = str(error) or type(error).__name__
        now = utcnow()

        job.retries_left = max(0, job.retries_left - 1)
        if job.retries_left > 0:
            job.run_at = next_run_at(self.config.backoff_policy, job.attempts, now)
            job.status = JobStatus.PENDING
            queue = self._queues.get(job.type)
            if queue is not None:
                queue.reschedule(job)
            self.logger.warning(
                f"Job {job.id} ({job.type}) will retry at {job.run_at.isoformat()} "
                f"({job.retries_left} retries left)"
            )
        else:
            self._mark_failed(job, now)

    def _fail_without_handler(self, job: Job) -> None:
        error = NoHandlerError(job.type)
        job.last_error = str(error)
        self.logger.error(f"Job {job.id} failed: {error}")
        self._mark_failed(job, utcnow())

    def _mark_failed(self, job: Job, now: datetime) -> None:
        job.status = JobStatus.FAILED
        job.failed_at = now
        self._evict(job)
        self._failed += 1
        self.dead_letters.add(job)
        self.logger.error(
            f"Job {job.id} ({job.type}) failed permanently after {job.attempts} "
            f"attempts: {job.last_error}"
        )

    def _evict(self, job: Job) -> None:
        queue = self._queues.get(job.type)
        if queue is not None:
            queue.remove(job)

    # Introspection

    def get_stats(self) -> Dict[str, Any]:
        """Counters and per-type queue sizes."""
        per_type = {
            job_type: {
                "pending": queue.count(JobStatus.PENDING),
                "processing": queue.count(JobStatus.PROCESSING),
            }
            for job_type, queue in self._queues.items()
        }
        return {
            "processed": self._processed,
            "failed": self._failed,
            "pending": sum(counts["pending"] for counts in per_type.values()),
            "processing_count": len(self._processing),
            "per_type": per_type,
        }

    def get_jobs_for_tenant(self, tenant_tag: Any, include_failed: bool = True) -> List[Job]:
        """Live jobs for a tenant, followed by its retained dead letters."""
        jobs = [
            job
            for queue in self._queues.values()
            for job in queue
            if job.tenant_tag == tenant_tag
        ]
        if include_failed:
            # Untagged jobs form their own group, so match None by equality too.
            jobs.extend(
                job for job in self.dead_letters.list() if job.tenant_tag == tenant_tag
            )
        return jobs

    def get_job(self, job_id: UUID) -> Job:
        """Look up a live job or a retained dead letter."""
        for queue in self._queues.values():
            for job in queue:
                if job.id == job_id:
                    return job
        return self.dead_letters.get(job_id)

    def retry_dead_letter(self, job_id: UUID) -> UUID:
        """Resubmit a dead letter as a new job with a fresh retry budget."""
        job = self.dead_letters.pop(job_id)
        new_id = self.submit(
            job.type,
            job.payload,
            priority=job.priority,
            retries=job.retries,
            tenant_tag=job.tenant_tag,
        )
        self.logger.info(f"Dead letter {job_id} resubmitted as job {new_id}")
        return new_id
