"""
Queue worker loop.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable

import structlog

from contractguard.workers.queue import Job, JobQueue, JobStatus

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int, str], Awaitable[None]]
JobProcessor = Callable[[Job, ProgressCallback], Awaitable[dict[str, Any]]]


class Worker:
    """
    Pulls jobs from one queue and runs them with bounded concurrency.

    While a job runs its lock is renewed periodically so the stall checker
    never mistakes a live run for a dead one.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: JobProcessor,
        concurrency: int = 1,
        lock_duration: float = 60.0,
        lock_renew: float = 15.0,
        stalled_interval: float = 30.0,
        max_stalled_count: int = 2,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.lock_duration = lock_duration
        self.lock_renew = lock_renew
        self.stalled_interval = stalled_interval
        self.max_stalled_count = max_stalled_count
        self.poll_interval = poll_interval

        self.name = f"{queue.name}-{uuid.uuid4().hex[:8]}"
        self._stopping = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """Process jobs until `stop()` is called."""
        logger.info(
            "worker_started",
            worker=self.name,
            queue=self.queue.name,
            concurrency=self.concurrency,
        )
        stall_task = asyncio.create_task(self._stall_loop())
        try:
            while not self._stopping.is_set():
                if len(self._tasks) >= self.concurrency:
                    await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
                    continue

                job = await self.queue.dequeue(self.name, self.lock_duration)
                if job is None:
                    await self._idle()
                    continue

                task = asyncio.create_task(self.process(job))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            stall_task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            logger.info("worker_stopped", worker=self.name)

    def stop(self) -> None:
        self._stopping.set()

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def process(self, job: Job) -> str:
        """
        Run one job, then complete it or record the failed attempt.

        Returns:
            The job's final status for this attempt
        """
        async def report(step: int, total: int, label: str) -> None:
            await self.queue.update_progress(job.id, step, total, label)

        renew_task = asyncio.create_task(self._renew_lock(job))
        try:
            result = await self.processor(job, report)
        except Exception as e:
            status = await self.queue.fail(job, str(e))
            logger.error(
                "job_failed",
                queue=self.queue.name,
                job_id=job.id,
                attempt=job.attempts_made,
                max_attempts=job.options.attempts,
                will_retry=status == JobStatus.DELAYED,
                error=str(e),
            )
            return status
        finally:
            renew_task.cancel()

        await self.queue.complete(job, result)
        logger.info("job_completed", queue=self.queue.name, job_id=job.id, result=result)
        return JobStatus.COMPLETED

    async def _renew_lock(self, job: Job) -> None:
        while True:
            await asyncio.sleep(self.lock_renew)
            if not await self.queue.extend_lock(job, self.lock_duration):
                logger.warning("job_lock_lost", queue=self.queue.name, job_id=job.id)
                return

    async def _stall_loop(self) -> None:
        while True:
            await asyncio.sleep(self.stalled_interval)
            try:
                await self.queue.check_stalled(self.max_stalled_count)
            except Exception as e:
                logger.error("stall_check_failed", queue=self.queue.name, error=str(e))
