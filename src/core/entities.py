from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

MAX_COMMENTS_PER_CALL = 50


@dataclass(frozen=True)
class ClassificationInput:
    """
    A text blob and the keywords it is tested against.
    """
    text: str
    keywords: List[str]
    post_id: Optional[str] = None
    url: Optional[str] = None

    def truncated(self, max_length: int) -> "ClassificationInput":
        if len(self.text) <= max_length:
            return self
        return ClassificationInput(
            text=self.text[:max_length],
            keywords=self.keywords,
            post_id=self.post_id,
            url=self.url,
        )


@dataclass(frozen=True)
class CommentsClassificationInput:
    """
    The comment bodies of a single post, classified as one unit.
    """
    post_id: str
    comments: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    @property
    def analyzed_comment_count(self) -> int:
        return min(len(self.comments), MAX_COMMENTS_PER_CALL)
