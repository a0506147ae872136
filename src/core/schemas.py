"""
Pydantic schemas for classification results, reports and request status
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RequestState = Literal["pending", "in_progress", "completed", "failed"]
TERMINAL_STATES = ("completed", "failed")


class AnalysisRequest(BaseModel):
    """
    Validated, immutable analysis request
    """
    model_config = ConfigDict(frozen=True)

    targets: List[str]
    keywords: List[str]


class ClassificationResult(BaseModel):
    """
    Buying-intent judgement for a single post
    """
    mentioned: bool = False
    mentioned_keywords: List[str] = Field(default_factory=list)
    snippet: str = ""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    analysis: str = ""
    post_id: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def failed(cls, analysis: str, post_id: Optional[str] = None,
               url: Optional[str] = None) -> "ClassificationResult":
        return cls(analysis=analysis, post_id=post_id, url=url)


class CommentsClassificationResult(ClassificationResult):
    """
    Buying-intent judgement for the aggregated comments of a post
    """
    post_id: str
    comment_count: int = 0
    analyzed_comment_count: int = 0


class AnalysisReport(BaseModel):
    targets: List[str]
    keywords: List[str]
    total_posts: int
    filtered_posts: int
    post_results: List[ClassificationResult] = Field(default_factory=list)
    comment_results: List[CommentsClassificationResult] = Field(default_factory=list)
    high_intent_posts: int = 0
    high_intent_comments: int = 0
    completed_at: datetime


class RequestStatus(BaseModel):
    """
    Lifecycle record of an analysis request
    """
    id: str
    status: RequestState
    message: str
    progress: int = Field(0, ge=0, le=100)
    targets: List[str]
    keywords: List[str]
    report: Optional[AnalysisReport] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES
