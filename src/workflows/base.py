"""
Contains base class for analysis pipelines
"""
from abc import ABC, abstractmethod
from typing import Optional

from core.schemas import AnalysisReport, AnalysisRequest


class AnalysisPipeline(ABC):
    """
    Orchestrates ingestion → filtering → classification
    for a single accepted request.
    """

    name: str

    @abstractmethod
    async def run(
        self,
        request_id: str,
        request: AnalysisRequest,
        source_meta: Optional[str] = None,
    ) -> Optional[AnalysisReport]:
        """
        Execute the pipeline and return the report, or None on failure.
        Must never raise uncaught exceptions; failures are recorded on the
        request's status.
        """
        raise NotImplementedError
