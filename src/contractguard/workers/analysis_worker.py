"""
Contract analysis worker.
"""

from typing import Any
from uuid import UUID

import structlog

from contractguard.config import Settings
from contractguard.models.contract import ContractType, FileType
from contractguard.pipeline.orchestrator import AnalysisPipeline, AnalysisRequest
from contractguard.workers.queue import Job, JobQueue
from contractguard.workers.runner import ProgressCallback, Worker

logger = structlog.get_logger(__name__)


class AnalysisJobProcessor:
    """Runs the analysis pipeline for one queued contract."""

    def __init__(self, pipeline: AnalysisPipeline):
        self.pipeline = pipeline

    async def __call__(self, job: Job, progress: ProgressCallback) -> dict[str, Any]:
        data = job.data
        request = AnalysisRequest(
            contract_id=UUID(data["contract_id"]),
            tenant_id=UUID(data["tenant_id"]),
            file_path=data["file_path"],
            file_type=FileType(data.get("file_type", FileType.PDF.value)),
            contract_type=ContractType(data.get("contract_type", ContractType.OTHER.value)),
        )
        logger.info(
            "analysis_job_started",
            job_id=job.id,
            contract_id=str(request.contract_id),
            attempt=job.attempts_made + 1,
        )
        result = await self.pipeline.run(request, progress)
        return result.to_dict()


def build_analysis_worker(
    queue: JobQueue,
    pipeline: AnalysisPipeline,
    settings: Settings,
) -> Worker:
    """Analysis worker with low concurrency; completion calls are the bottleneck."""
    return Worker(
        queue,
        AnalysisJobProcessor(pipeline),
        concurrency=settings.analysis_concurrency,
        lock_duration=settings.lock_duration_seconds,
        lock_renew=settings.lock_renew_seconds,
        stalled_interval=settings.stalled_interval_seconds,
        max_stalled_count=settings.max_stalled_count,
    )
