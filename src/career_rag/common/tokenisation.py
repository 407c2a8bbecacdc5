"""career_rag.common.tokenisation

Term tokenisation utilities.

Term sets for the simulated job-board search, which matches postings of
other roles by overlap with the query. The BM25 retriever uses this module
only to skip queries made entirely of stopwords.

Functions
---------
tokenize
    Lower-cased alphanumeric tokens of a string, in order.
terms
    Distinct non-stopword terms of a string.
overlap_coefficient
    Size-normalised overlap of two term sets.
"""

from __future__ import annotations

import re
from typing import AbstractSet, FrozenSet, List

_TOKEN_PATTERN = re.compile(r"[a-z0-9][a-z0-9+#.]*[a-z0-9+#]|[a-z0-9]")

STOPWORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has",
        "have", "in", "into", "is", "it", "its", "of", "on", "or", "that", "the",
        "their", "this", "to", "was", "were", "will", "with", "within", "you",
        "your", "our", "we", "i", "me", "my",
    }
)


def tokenize(text: str) -> List[str]:
    """Return lower-cased alphanumeric tokens of ``text`` in order.

    Tokens may contain inner ``.``, ``+`` and ``#`` so that names such as
    ``node.js``, ``c++`` and ``c#`` survive.
    """
    if not text:
        return []
    return _TOKEN_PATTERN.findall(text.lower())


def terms(text: str) -> FrozenSet[str]:
    """Return the distinct non-stopword terms of ``text``."""
    return frozenset(t for t in tokenize(text) if t not in STOPWORDS)


def overlap_coefficient(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """Return ``|a & b| / min(|a|, |b|)``, or ``0.0`` if either set is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


__all__ = [
    "STOPWORDS",
    "tokenize",
    "terms",
    "overlap_coefficient",
]
