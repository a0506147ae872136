"""
Error taxonomy for the analysis pipeline.
"""
from typing import Optional


class DemandRadarError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(DemandRadarError):
    """Client input is out of bounds."""


class QuotaExceeded(DemandRadarError):
    """The shared rate-limit counter has reached its ceiling."""

    def __init__(self, message: str = "Rate limit exceeded, try again later",
                 retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(DemandRadarError):
    """The content source answered with a non-success status or was unreachable."""

    def __init__(self, status: Optional[int], message: str = ""):
        self.status = status
        super().__init__(message or f"Upstream error: {status}")


class ClassifierCallError(DemandRadarError):
    """The text-classifier service failed to produce a response."""


class ParseError(DemandRadarError):
    """The text-classifier response contained no usable JSON object."""


class RequestNotFound(DemandRadarError):
    """No status record exists for the given request id."""
