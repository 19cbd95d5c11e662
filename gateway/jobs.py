from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from chunk_pipeline.errors import InvalidInput
from chunk_pipeline.models import ProcessingResult
from chunk_pipeline.scheduler import ProgressCallback
from common.schemas import JobState, JobStatus, ProcessOptions, ProgressMessage

logger = logging.getLogger(__name__)

ProcessFn = Callable[[str, ProcessOptions, ProgressCallback], Awaitable[ProcessingResult]]

TERMINAL_STATES = {JobState.completed, JobState.failed, JobState.cancelled}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class Job:
    job_id: str
    file_path: str
    options: ProcessOptions
    state: JobState = JobState.waiting
    progress: int = 0
    message: str = "Queued"
    attempts: int = 0
    result: ProcessingResult | None = None
    error: str | None = None
    task: asyncio.Task | None = None
    subscribers: set[asyncio.Queue] = field(default_factory=set)

    def snapshot(self) -> ProgressMessage:
        return ProgressMessage(
            job_id=self.job_id,
            progress=self.progress,
            message=self.message,
            timestamp=utc_now_iso(),
        )

    def status(self) -> JobStatus:
        return JobStatus(
            job_id=self.job_id,
            state=self.state,
            progress=self.progress,
            message=self.message,
            attempts=self.attempts,
            file_path=self.file_path,
            options=self.options,
            result=dataclasses.asdict(self.result) if self.result else None,
            error=self.error,
        )


class JobManager:
    """Runs processing jobs in the background and fans out their progress.

    A job is retried as a whole up to ``attempts`` times, sleeping
    ``backoff_s * 2**(n-1)`` after the n-th failure. ``InvalidInput`` fails
    the job immediately. Once more than ``max_retained`` jobs are held, the
    oldest finished ones are forgotten.
    """

    def __init__(
        self,
        process_fn: ProcessFn,
        attempts: int = 3,
        backoff_s: float = 2.0,
        max_retained: int = 100,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._process_fn = process_fn
        self._attempts = max(1, attempts)
        self._backoff_s = backoff_s
        self._max_retained = max(1, max_retained)
        self._sleep = sleep
        self._jobs: dict[str, Job] = {}

    async def submit(self, file_path: str, options: ProcessOptions | None = None) -> Job:
        job = Job(job_id=str(uuid.uuid4()), file_path=file_path, options=options or ProcessOptions())
        self._jobs[job.job_id] = job
        job.task = asyncio.create_task(self._run(job))
        logger.info("Job queued: %s (%s)", job.job_id, file_path)
        return job

    async def _run(self, job: Job) -> None:
        job.state = JobState.active
        callback = lambda progress, message: self.publish(job, progress, message)

        while True:
            job.attempts += 1
            logger.info("Starting job %s (attempt %d/%d)", job.job_id, job.attempts, self._attempts)
            try:
                job.result = await self._process_fn(job.file_path, job.options, callback)
            except Exception as exc:
                job.error = str(exc)
                if isinstance(exc, InvalidInput) or job.attempts >= self._attempts:
                    job.state = JobState.failed
                    logger.error("Job %s failed: %s", job.job_id, exc)
                    self.publish(job, -1, f"Processing failed: {exc}")
                    self._evict()
                    return
                delay = self._backoff_s * 2 ** (job.attempts - 1)
                logger.warning("Job %s attempt %d failed, retrying in %.1fs", job.job_id, job.attempts, delay)
                await self._sleep(delay)
            else:
                job.error = None
                job.state = JobState.completed
                self.publish(job, 100, "Processing completed successfully!")
                logger.info("Job completed: %s", job.job_id)
                self._evict()
                return

    def _evict(self) -> None:
        excess = len(self._jobs) - self._max_retained
        if excess <= 0:
            return
        finished = [j.job_id for j in self._jobs.values() if j.state in TERMINAL_STATES]
        for job_id in finished[:excess]:
            del self._jobs[job_id]
        logger.info("Evicted %d finished jobs (%d retained)", min(excess, len(finished)), len(self._jobs))

    def publish(self, job: Job, progress: int, message: str) -> None:
        job.progress = progress
        job.message = message
        msg = job.snapshot()
        for queue in job.subscribers:
            queue.put_nowait(msg)

    def subscribe(self, job_id: str) -> asyncio.Queue:
        job = self._require(job_id)
        queue: asyncio.Queue = asyncio.Queue()
        job.subscribers.add(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        job = self._jobs.get(job_id)
        if job:
            job.subscribers.discard(queue)

    async def cancel(self, job_id: str) -> None:
        job = self._require(job_id)
        if job.task and not job.task.done():
            job.task.cancel()
            try:
                await job.task
            except asyncio.CancelledError:
                pass
        if job.state not in TERMINAL_STATES:
            job.state = JobState.cancelled
            self.publish(job, -1, "Job cancelled")
        self._jobs.pop(job_id, None)
        logger.info("Job removed: %s (%d remaining)", job_id, len(self._jobs))

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def list_jobs(self, limit: int = 50) -> list[Job]:
        return list(self._jobs.values())[-limit:]

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(job_id)
        return job

    @property
    def active_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.state not in TERMINAL_STATES)
