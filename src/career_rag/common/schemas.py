"""career_rag.common.schemas

Core data schemas shared across the RAG pipeline.

These lightweight dataclasses describe the canonical shapes for retrievable
passages, resume chunks, retrieval hits and ranked candidates. They are
created fresh for every analysis request and passed between chunking,
embedding, retrieval, re-ranking and generation components.

Classes
-------
Document
    A retrievable passage (knowledge-base requirement, job-board entry, ...).
Chunk
    A bounded, labelled segment of a resume.
SearchHit
    An ``(item, score)`` pair returned by a vector index query.
RetrievalSource
    Provenance of a retrieval candidate.
Candidate
    A ranked retrieval result.
ScoredRelevance
    A relevance score assigned to one candidate by a re-ranker.

Notes
-----
``metadata`` is intentionally untyped (``dict[str, Any]``) to allow arbitrary
key-value pairs (e.g., publisher, role, relevance). Downstream code should
treat missing keys defensively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, NamedTuple, Tuple
from uuid import uuid4

CHUNK_TYPES: Tuple[str, ...] = (
    "experience",
    "education",
    "skills",
    "projects",
    "summary",
    "certifications",
    "other",
)


@dataclass
class Document:
    """Container for a retrievable passage.

    Attributes
    ----------
    text : str
        Passage text.
    doc_id : str
        Unique identifier for the passage. Defaults to a random UUID4 string.
        Retrieval results are keyed by this identifier.
    metadata : Dict[str, Any]
        Arbitrary metadata (e.g., ``{"publisher": "job_board", "role": "data-analyst"}``).
    """
    text: str
    doc_id: str = field(default_factory=lambda: str(uuid4()))
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """A contiguous segment of a resume produced by the chunker.

    Attributes
    ----------
    text : str
        Chunk text, trimmed.
    type : str
        Section label inferred from keywords; one of :data:`CHUNK_TYPES`.
    line_range : tuple[int, int]
        ``(start, end)`` line numbers, 0-based start and exclusive end, in the
        source document.
    """
    text: str
    type: str
    line_range: Tuple[int, int]


class SearchHit(NamedTuple):
    """A single vector index hit."""
    item: Any
    score: float


class RetrievalSource(str, Enum):
    """Which retrieval list(s) a candidate came from."""
    VECTOR = "vector"
    LEXICAL = "lexical"
    HYBRID = "hybrid"


@dataclass
class Candidate:
    """A retrieval candidate.

    Attributes
    ----------
    doc_id : str
        Identifier of the underlying :class:`Document`.
    text : str
        Candidate text.
    score : float
        Merged retrieval score.
    source : RetrievalSource
        Provenance of the candidate.
    metadata : Dict[str, Any]
        Metadata copied from the underlying document.
    relevance : int or None
        Relevance score (0-100) assigned by a re-ranker, if any.
    """
    doc_id: str
    text: str
    score: float
    source: RetrievalSource
    metadata: Dict[str, Any] = field(default_factory=dict)
    relevance: int | None = None


@dataclass(frozen=True)
class ScoredRelevance:
    """Relevance score for the candidate at ``index``."""
    index: int
    score: int


__all__ = [
    "CHUNK_TYPES",
    "Document",
    "Chunk",
    "SearchHit",
    "RetrievalSource",
    "Candidate",
    "ScoredRelevance",
]
