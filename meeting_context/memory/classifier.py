"""Query classification.

A question asking for breadth (summaries, trends, "everything") gets the
comprehensive retrieval strategy; anything else is targeted.
"""

import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from meeting_context.memory.models import QueryStrategy

DEFAULT_KEYWORDS = (
    "summarize", "summary", "overview", "all", "everything", "comprehensive",
    "recurring", "frequent", "patterns", "trends", "overall", "general",
    "action items", "decisions", "conclusions", "outcomes", "results",
    "discussions", "topics", "agenda", "meetings", "previous", "history",
    "past", "recent", "lately", "so far",
)

DEFAULT_PATTERNS = (
    r"^(what (are|were|have)|how (many|much)|list|show|tell me about)",
)


class QueryClassifier(ABC):
    """Decides the retrieval strategy for a question."""

    @abstractmethod
    def classify(self, query: str) -> QueryStrategy:
        """Return the strategy for ``query``. Must never raise."""


class KeywordQueryClassifier(QueryClassifier):
    """Keyword and leading-phrase heuristic.

    Keywords match anywhere in the lowercased query (substring match, so
    "summarize" also hits "summarized"). Patterns are matched against the
    start of the stripped query.
    """

    def __init__(
        self,
        extra_keywords: Optional[Iterable[str]] = None,
        extra_patterns: Optional[Iterable[str]] = None,
    ):
        self.keywords: List[str] = [k.lower() for k in DEFAULT_KEYWORDS]
        if extra_keywords:
            self.keywords.extend(k.lower() for k in extra_keywords if k)

        self.patterns = [
            re.compile(p, re.IGNORECASE)
            for p in list(DEFAULT_PATTERNS) + list(extra_patterns or [])
        ]

    def classify(self, query: str) -> QueryStrategy:
        text = (query or "").strip()
        lowered = text.lower()

        if any(keyword in lowered for keyword in self.keywords):
            return QueryStrategy.COMPREHENSIVE
        if any(pattern.search(text) for pattern in self.patterns):
            return QueryStrategy.COMPREHENSIVE
        return QueryStrategy.TARGETED
