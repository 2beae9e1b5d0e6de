"""
Title tokenization and Jaccard similarity.
"""

import re
from typing import AbstractSet, Iterable

from signalwatch.analysis.config import STOP_WORDS

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str, stop_words: AbstractSet[str] = STOP_WORDS) -> frozenset[str]:
    """Lowercased alphanumeric tokens longer than two chars, minus stopwords."""
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return frozenset(w for w in cleaned.split() if len(w) > 2 and w not in stop_words)


def jaccard_similarity(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """|a ∩ b| / |a ∪ b|; two empty sets have similarity 0."""
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


class TokenCache:
    """Memoizes token sets per unique title."""

    def __init__(self, stop_words: AbstractSet[str] = STOP_WORDS):
        self._stop_words = stop_words
        self._tokens: dict[str, frozenset[str]] = {}

    def tokens(self, title: str) -> frozenset[str]:
        cached = self._tokens.get(title)
        if cached is None:
            cached = tokenize(title, self._stop_words)
            self._tokens[title] = cached
        return cached

    def warm(self, titles: Iterable[str]) -> None:
        for title in titles:
            self.tokens(title)

    def __len__(self) -> int:
        return len(self._tokens)
