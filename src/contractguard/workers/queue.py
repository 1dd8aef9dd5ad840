"""
Durable job queue on Redis.

Each named queue keeps:
- a hash per job (payload, attempts, progress, status)
- a waiting list, consumed FIFO
- an active list of jobs currently held by a worker
- a delayed sorted set of retries keyed by the time they become due
- completed and failed sets for stats

Workers hold an expiring lock per active job and renew it while the job
runs. An active job whose lock has expired is considered stalled.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import WatchError

logger = structlog.get_logger(__name__)

ANALYSIS_QUEUE = "contract-analysis"
EMBEDDING_QUEUE = "embedding-generation"


class JobStatus:
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


PENDING_STATUSES = {JobStatus.WAITING, JobStatus.ACTIVE, JobStatus.DELAYED}


def analysis_job_id(contract_id: Any) -> str:
    return f"analysis:{contract_id}"


def embedding_job_id(contract_id: Any) -> str:
    return f"embed:{contract_id}"


@dataclass
class JobOptions:
    """Retry policy for a job."""
    attempts: int = 3
    backoff_seconds: float = 5.0

    def backoff_for(self, attempts_made: int) -> float:
        """Exponential delay before the next attempt."""
        return self.backoff_seconds * (2 ** (attempts_made - 1))


@dataclass
class Job:
    """A unit of work pulled from a queue."""
    id: str
    queue: str
    data: dict[str, Any]
    options: JobOptions = field(default_factory=JobOptions)
    attempts_made: int = 0
    stalled_count: int = 0
    status: str = JobStatus.WAITING
    progress: dict[str, Any] | None = None
    error: str | None = None
    token: str | None = None

    @classmethod
    def from_hash(cls, queue: str, raw: dict[str, str]) -> "Job":
        return cls(
            id=raw["id"],
            queue=queue,
            data=json.loads(raw.get("data") or "{}"),
            options=JobOptions(
                attempts=int(raw.get("max_attempts", 3)),
                backoff_seconds=float(raw.get("backoff_seconds", 5.0)),
            ),
            attempts_made=int(raw.get("attempts_made", 0)),
            stalled_count=int(raw.get("stalled_count", 0)),
            status=raw.get("status", JobStatus.WAITING),
            progress=json.loads(raw["progress"]) if raw.get("progress") else None,
            error=raw.get("error") or None,
        )


class JobQueue:
    """A named FIFO queue with retries, locks and stall detection."""

    def __init__(self, client: Redis, name: str, prefix: str = "cg"):
        self.client = client
        self.name = name
        self.prefix = f"{prefix}:{name}"

    # =========================================================================
    # Keys
    # =========================================================================

    def _job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def _lock_key(self, job_id: str) -> str:
        return f"{self.prefix}:lock:{job_id}"

    @property
    def _waiting(self) -> str:
        return f"{self.prefix}:waiting"

    @property
    def _active(self) -> str:
        return f"{self.prefix}:active"

    @property
    def _delayed(self) -> str:
        return f"{self.prefix}:delayed"

    @property
    def _completed(self) -> str:
        return f"{self.prefix}:completed"

    @property
    def _failed(self) -> str:
        return f"{self.prefix}:failed"

    # =========================================================================
    # Producer Side
    # =========================================================================

    async def enqueue(
        self,
        job_id: str,
        data: dict[str, Any],
        options: JobOptions | None = None,
    ) -> str:
        """
        Add a job. Enqueueing an ID that is still pending is a no-op.

        The pending check and the write run as one WATCH/MULTI transaction
        on the job hash, so concurrent callers push the job at most once.

        Returns:
            The job ID
        """
        options = options or JobOptions()
        job_key = self._job_key(job_id)

        async with self.client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(job_key)
                    status = await pipe.hget(job_key, "status")
                    if status in PENDING_STATUSES:
                        logger.info(
                            "job_already_pending", queue=self.name, job_id=job_id, status=status
                        )
                        return job_id

                    pipe.multi()
                    pipe.delete(job_key)
                    pipe.hset(
                        job_key,
                        mapping={
                            "id": job_id,
                            "data": json.dumps(data, default=str),
                            "max_attempts": options.attempts,
                            "backoff_seconds": options.backoff_seconds,
                            "attempts_made": 0,
                            "stalled_count": 0,
                            "status": JobStatus.WAITING,
                            "created_at": time.time(),
                        },
                    )
                    pipe.srem(self._completed, job_id)
                    pipe.srem(self._failed, job_id)
                    pipe.lpush(self._waiting, job_id)
                    await pipe.execute()
                    break
                except WatchError:
                    logger.debug("job_enqueue_conflict", queue=self.name, job_id=job_id)
                    continue

        logger.info("job_enqueued", queue=self.name, job_id=job_id)
        return job_id

    async def get_job(self, job_id: str) -> Job | None:
        raw = await self.client.hgetall(self._job_key(job_id))
        if not raw:
            return None
        return Job.from_hash(self.name, raw)

    # =========================================================================
    # Consumer Side
    # =========================================================================

    async def promote_delayed(self, now: float | None = None) -> int:
        """Move retries whose backoff has elapsed back to waiting."""
        now = now if now is not None else time.time()
        due = await self.client.zrangebyscore(self._delayed, 0, now)
        promoted = 0
        for job_id in due:
            # zrem guards against another worker promoting the same job
            if await self.client.zrem(self._delayed, job_id):
                await self.client.hset(self._job_key(job_id), "status", JobStatus.WAITING)
                await self.client.lpush(self._waiting, job_id)
                promoted += 1
        return promoted

    async def dequeue(self, token: str, lock_duration: float) -> Job | None:
        """Take the oldest waiting job and lock it for this worker."""
        await self.promote_delayed()

        job_id = await self._move_to_active(token, lock_duration)
        if job_id is None:
            return None

        job = await self.get_job(job_id)
        if job is None:
            # Hash vanished; nothing to run
            await self.client.lrem(self._active, 0, job_id)
            await self.client.delete(self._lock_key(job_id))
            return None

        job.token = token
        logger.debug("job_dequeued", queue=self.name, job_id=job_id)
        return job

    async def _move_to_active(self, token: str, lock_duration: float) -> str | None:
        """
        Move the oldest waiting job to active and take its lock.

        Both happen in one MULTI block so an active job is never visible
        without its lock; a concurrent change to the waiting list aborts
        the transaction and the move is retried.
        """
        async with self.client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(self._waiting)
                    job_id = await pipe.lindex(self._waiting, -1)
                    if job_id is None:
                        return None

                    pipe.multi()
                    pipe.lmove(self._waiting, self._active, "RIGHT", "LEFT")
                    pipe.set(self._lock_key(job_id), token, px=int(lock_duration * 1000))
                    pipe.hset(
                        self._job_key(job_id),
                        mapping={"status": JobStatus.ACTIVE, "started_at": time.time()},
                    )
                    await pipe.execute()
                    return job_id
                except WatchError:
                    continue

    async def extend_lock(self, job: Job, lock_duration: float) -> bool:
        """Renew the worker's lock on an active job."""
        lock_key = self._lock_key(job.id)
        if await self.client.get(lock_key) != job.token:
            return False
        return bool(await self.client.pexpire(lock_key, int(lock_duration * 1000)))

    async def update_progress(self, job_id: str, step: int, total: int, label: str) -> None:
        progress = {"step": step, "total": total, "label": label}
        await self.client.hset(self._job_key(job_id), "progress", json.dumps(progress))

    async def complete(self, job: Job, result: dict[str, Any] | None = None) -> None:
        """Mark an active job as done."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.lrem(self._active, 0, job.id)
            pipe.delete(self._lock_key(job.id))
            pipe.hset(
                self._job_key(job.id),
                mapping={
                    "status": JobStatus.COMPLETED,
                    "result": json.dumps(result or {}, default=str),
                    "finished_at": time.time(),
                },
            )
            pipe.sadd(self._completed, job.id)
            await pipe.execute()
        job.status = JobStatus.COMPLETED

    async def fail(self, job: Job, error: str) -> str:
        """
        Record a failed attempt.

        Schedules a retry with exponential backoff while attempts remain,
        otherwise marks the job failed.

        Returns:
            The job's new status
        """
        job.attempts_made += 1
        job.error = error
        retry = job.attempts_made < job.options.attempts

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.lrem(self._active, 0, job.id)
            pipe.delete(self._lock_key(job.id))
            fields: dict[str, Any] = {"attempts_made": job.attempts_made, "error": error}
            if retry:
                delay = job.options.backoff_for(job.attempts_made)
                fields["status"] = JobStatus.DELAYED
                pipe.zadd(self._delayed, {job.id: time.time() + delay})
            else:
                fields["status"] = JobStatus.FAILED
                fields["finished_at"] = time.time()
                pipe.sadd(self._failed, job.id)
            pipe.hset(self._job_key(job.id), mapping=fields)
            await pipe.execute()

        job.status = JobStatus.DELAYED if retry else JobStatus.FAILED
        return job.status

    async def check_stalled(self, max_stalled_count: int) -> list[str]:
        """
        Recover active jobs whose lock has expired.

        A stalled job goes back to the front of the waiting list; one that
        stalls more than `max_stalled_count` times is failed.

        Returns:
            IDs of the stalled jobs found
        """
        stalled = []
        for job_id in await self.client.lrange(self._active, 0, -1):
            if await self.client.exists(self._lock_key(job_id)):
                continue
            if not await self.client.lrem(self._active, 0, job_id):
                continue  # finished meanwhile

            stalled.append(job_id)
            count = await self.client.hincrby(self._job_key(job_id), "stalled_count", 1)
            if count > max_stalled_count:
                await self.client.hset(
                    self._job_key(job_id),
                    mapping={
                        "status": JobStatus.FAILED,
                        "error": "job stalled more than allowable limit",
                        "finished_at": time.time(),
                    },
                )
                await self.client.sadd(self._failed, job_id)
                logger.error("job_stalled_failed", queue=self.name, job_id=job_id, count=count)
            else:
                await self.client.hset(self._job_key(job_id), "status", JobStatus.WAITING)
                await self.client.rpush(self._waiting, job_id)
                logger.warning("job_stalled", queue=self.name, job_id=job_id, count=count)
        return stalled

    async def stats(self) -> dict[str, int]:
        """Job counts by state."""
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.llen(self._waiting)
            pipe.llen(self._active)
            pipe.zcard(self._delayed)
            pipe.scard(self._completed)
            pipe.scard(self._failed)
            waiting, active, delayed, completed, failed = await pipe.execute()
        return {
            "waiting": waiting,
            "active": active,
            "delayed": delayed,
            "completed": completed,
            "failed": failed,
        }
