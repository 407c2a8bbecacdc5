"""
Common building blocks shared across the career RAG stack.

This package provides small, widely-used primitives (record schemas, the
error taxonomy and term tokenisation) intended to be imported by multiple
layers of the system.

Classes
-------
Document
    Retrievable passage.
Chunk
    Labelled resume segment.
Candidate
    Ranked retrieval result.
ScoredRelevance
    Re-ranker score for one candidate.
SearchHit
    Vector index hit.

Attributes
----------
DocId : TypeAlias
    Type alias for document identifiers.
Embedding : TypeAlias
    Type alias for embedding vectors.
"""
from __future__ import annotations
from typing import List, TypeAlias

from .schemas import (
    CHUNK_TYPES,
    Candidate,
    Chunk,
    Document,
    RetrievalSource,
    ScoredRelevance,
    SearchHit,
)

DocId: TypeAlias = str
Embedding: TypeAlias = List[float]

__all__ = [
    "CHUNK_TYPES",
    "Candidate",
    "Chunk",
    "Document",
    "RetrievalSource",
    "ScoredRelevance",
    "SearchHit",
    "DocId",
    "Embedding",
]
