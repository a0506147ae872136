"""
Workflows module - Pipeline orchestration for buying-intent analysis.
"""
from workflows.base import AnalysisPipeline
from workflows.analysis import AnalysisOrchestrator, PipelineLimits, validate_request

__all__ = [
    "AnalysisPipeline",
    "AnalysisOrchestrator",
    "PipelineLimits",
    "validate_request",
]
