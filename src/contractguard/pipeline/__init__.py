"""
Contract analysis pipeline.
"""

from contractguard.pipeline.orchestrator import (
    AnalysisPipeline,
    AnalysisRequest,
    PipelineResult,
    PipelineStage,
)

__all__ = ["AnalysisPipeline", "AnalysisRequest", "PipelineResult", "PipelineStage"]
