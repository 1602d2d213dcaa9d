"""Heuristic classification of queries into questions and conditions.

A query is a *condition* when it contains at least one condition keyword
(case-insensitive substring match), does not start with an interrogative
word and does not end with a question mark.  Everything else is a
*question*.  The trailing question mark always wins over keywords; answer
prompt selection depends on that precedence.
"""

from __future__ import annotations

import re

from src.config.app_config import (
    DEFAULT_CONDITION_KEYWORDS,
    DEFAULT_QUESTION_WORDS,
    AIConfig,
)
from src.models.query import Query, QueryType


class QueryClassifier:
    """Pure function of the input string and the configured word lists."""

    def __init__(
        self,
        condition_keywords: list[str] | None = None,
        question_words: list[str] | None = None,
    ) -> None:
        keywords = condition_keywords if condition_keywords is not None else DEFAULT_CONDITION_KEYWORDS
        words = question_words if question_words is not None else DEFAULT_QUESTION_WORDS
        # Blank entries would match every query.
        self._keywords = tuple(k.lower() for k in keywords if k.strip())
        alternatives = "|".join(re.escape(w) for w in words if w.strip())
        self._interrogative = (
            # \b keeps "Wasser" from matching "was".
            re.compile(rf"^(?:{alternatives})\b", re.IGNORECASE) if alternatives else None
        )

    @classmethod
    def from_config(cls, config: AIConfig) -> QueryClassifier:
        return cls(config.condition_keywords, config.question_words)

    def classify(self, text: str) -> QueryType:
        stripped = text.strip()
        lowered = stripped.lower()
        if stripped.endswith("?"):
            return QueryType.QUESTION
        if self._interrogative is not None and self._interrogative.match(stripped):
            return QueryType.QUESTION
        # Substring match, so "ist" also fires inside "Frist".
        if any(keyword in lowered for keyword in self._keywords):
            return QueryType.CONDITION
        return QueryType.QUESTION

    def build_query(self, text: str) -> Query:
        """Return a :class:`Query` with the stripped text and its type."""
        return Query(text=text.strip(), type=self.classify(text))
