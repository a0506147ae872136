"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from pydantic import BaseModel

MODERATOR_DISTINCTIONS = ("moderator", "admin")


class ContentItem(BaseModel):
    """
    A post from a target community, read-only downstream of the fetcher
    """
    id: str
    title: str = ""
    body: str = ""
    author: str = ""
    distinguished: Optional[str] = None
    community: str = ""
    url: Optional[str] = None
    permalink: str = ""
    score: int = 0
    num_comments: int = 0
    created_utc: Optional[float] = None

    @property
    def text(self) -> str:
        return f"{self.title} {self.body}".strip()

    @property
    def is_moderator_action(self) -> bool:
        return (self.distinguished or "").lower() in MODERATOR_DISTINCTIONS


class CommentItem(BaseModel):
    """
    A top-level comment on a post
    """
    id: str
    post_id: str
    body: str = ""
    author: str = ""
    score: int = 0
    created_utc: Optional[float] = None


class ContentSource(ABC):
    """
    Base interface for the content platform.
    Implementations raise UpstreamError on non-success responses.
    """

    name: str

    @abstractmethod
    async def list_new_posts(self, community: str, limit: int) -> List[ContentItem]:
        raise NotImplementedError

    @abstractmethod
    async def list_comments(self, post_id: str, limit: int) -> List[CommentItem]:
        raise NotImplementedError

    async def search_communities(self, query: str) -> List[Dict[str, str]]:
        """Community name suggestions; sources without search return nothing."""
        return []

    async def close(self) -> None:
        return None
