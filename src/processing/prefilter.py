import logging
import re
from typing import FrozenSet, Iterable, List, Optional, Sequence

from core.synonyms import expand_keywords
from ingestion.base import ContentItem

logger = logging.getLogger(__name__)

AUTOMATED_MODERATION_ACCOUNTS = frozenset({"automoderator"})

REMOVAL_PHRASES = (
    "[removed]",
    "[deleted]",
    "removed by moderator",
    "removed by the moderators",
    "this post has been removed",
    "your post has been removed",
    "this submission has been removed",
    "removed for violating",
    "violates rule",
    "rule violation",
    "breaking rule",
)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def keyword_match(text: str, keywords: Iterable[str]) -> bool:
    text = text.lower()
    return any(k.lower() in text for k in keywords if k)


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


def passes_structural(item: ContentItem) -> bool:
    """Stage A: drop moderation bots, moderator actions and removal boilerplate."""
    if item.author.lower() in AUTOMATED_MODERATION_ACCOUNTS:
        return False

    if item.is_moderator_action:
        return False

    text = item.text.lower()
    if any(phrase in text for phrase in REMOVAL_PHRASES):
        return False

    return True


def passes_relevance(
    item: ContentItem,
    keywords: Sequence[str],
    synonym_terms: Optional[FrozenSet[str]] = None,
) -> bool:
    """Stage B: literal keyword match, or a token from a matching synonym group."""
    text = item.text

    if keyword_match(text, keywords):
        return True

    if synonym_terms is None:
        synonym_terms = expand_keywords(keywords)
    if not synonym_terms:
        return False

    return any(token in synonym_terms for token in tokenize(text))


def _ratio(kept: int, total: int) -> str:
    return f"{kept}/{total} ({(kept / total * 100) if total else 0:.0f}%)"


class RelevanceFilter:
    """
    Two ordered, stateless stages: structural rejection, then relevance
    matching. Order of the input is preserved.
    """

    def apply(self, items: Sequence[ContentItem], keywords: Sequence[str]) -> List[ContentItem]:
        structural = [item for item in items if passes_structural(item)]
        logger.info(f"Structural filter: {_ratio(len(structural), len(items))} items kept")

        synonym_terms = expand_keywords(keywords)
        relevant = [
            item for item in structural
            if passes_relevance(item, keywords, synonym_terms)
        ]
        logger.info(f"Relevance filter: {_ratio(len(relevant), len(structural))} items kept")

        return relevant
