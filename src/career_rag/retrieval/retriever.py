"""career_rag.retrieval.retriever

Retriever implementations for the career RAG pipeline.

This module provides the vector-only and hybrid (vector + BM25) retrieval
strategies over an in-memory corpus of passages. Both embed the corpus into a
request-scoped :class:`~career_rag.retrieval.vector_store.VectorIndex` unless a
prebuilt index is supplied.

Classes
-------
VectorRetriever
    Direct top-k retrieval by cosine similarity.
HybridRetriever
    Weighted merge of vector similarity and BM25 keyword scores.

Functions
---------
lexical_search
    Rank passages by normalised BM25 score.
merge_candidates
    Merge vector and lexical hit lists into weighted candidates.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence

from llama_index.core.schema import TextNode
from llama_index.retrievers.bm25 import BM25Retriever

from career_rag.common.schemas import Candidate, Document, RetrievalSource, SearchHit
from career_rag.common.tokenisation import terms
from career_rag.retrieval.embedder import EmbeddingProvider
from career_rag.retrieval.vector_store import VectorIndex

logger = logging.getLogger("career_rag.retrieval.retriever")

DEFAULT_VECTOR_WEIGHT = 0.7
DEFAULT_LEXICAL_WEIGHT = 0.3


def lexical_search(query: str, corpus: Sequence[Document], k: int) -> List[SearchHit]:
    """Rank ``corpus`` against ``query`` with BM25.

    A :class:`~llama_index.retrievers.bm25.BM25Retriever` is built over the
    passages (English stemming and stopwords). Raw BM25 scores are divided by
    the best score so that the top hit scores ``1.0`` and every hit falls in
    ``(0, 1]``. Passages sharing no term with the query are dropped. Ties keep
    corpus order.

    Parameters
    ----------
    query : str
        Query text.
    corpus : Sequence[Document]
        Passages to score.
    k : int
        Maximum number of hits.

    Returns
    -------
    list[SearchHit]
        Hits whose ``item`` is the matching :class:`Document`.
    """
    if k <= 0 or not corpus or not terms(query):
        return []

    nodes = [TextNode(text=doc.text, id_=str(position)) for position, doc in enumerate(corpus)]
    bm25 = BM25Retriever.from_defaults(nodes=nodes, similarity_top_k=min(k, len(nodes)))

    scored = [
        (float(hit.score or 0.0), int(hit.node.node_id))
        for hit in bm25.retrieve(query)
    ]
    scored = [(score, position) for score, position in scored if score > 0.0]
    if not scored:
        return []

    best = max(score for score, _ in scored)
    scored.sort(key=lambda entry: (-entry[0], entry[1]))
    return [SearchHit(corpus[position], score / best) for score, position in scored]


def merge_candidates(
        vector_hits: Sequence[SearchHit],
        lexical_hits: Sequence[SearchHit],
        *,
        vector_weight: float = DEFAULT_VECTOR_WEIGHT,
        lexical_weight: float = DEFAULT_LEXICAL_WEIGHT,
    ) -> List[Candidate]:
    """Merge vector and lexical hits keyed by document id.

    A vector hit contributes ``vector_weight * score``. A lexical hit adds
    ``lexical_weight * score`` and marks the candidate ``hybrid`` when the
    document was already found by vector search. The merged list is sorted by
    descending score (stable) and not truncated.
    """
    merged: Dict[str, Candidate] = {}

    for hit in vector_hits:
        doc: Document = hit.item
        if doc.doc_id in merged:
            continue
        merged[doc.doc_id] = Candidate(
            doc_id=doc.doc_id,
            text=doc.text,
            score=vector_weight * hit.score,
            source=RetrievalSource.VECTOR,
            metadata=dict(doc.metadata),
        )

    for hit in lexical_hits:
        doc = hit.item
        existing = merged.get(doc.doc_id)
        if existing is not None:
            existing.score += lexical_weight * hit.score
            existing.source = RetrievalSource.HYBRID
        else:
            merged[doc.doc_id] = Candidate(
                doc_id=doc.doc_id,
                text=doc.text,
                score=lexical_weight * hit.score,
                source=RetrievalSource.LEXICAL,
                metadata=dict(doc.metadata),
            )

    return sorted(merged.values(), key=lambda c: c.score, reverse=True)


class VectorRetriever:
    """Direct top-k retriever by cosine similarity.

    Parameters
    ----------
    embedder : EmbeddingProvider
        Provider used to embed the corpus and the query.
    backend : str, optional
        Vector index backend for ephemeral indices. Defaults to ``"exact"``.
    """

    def __init__(
            self,
            *,
            embedder: EmbeddingProvider,
            backend: str = "exact",
        ):
        self.embedder = embedder
        self.backend = backend

    async def build_index(self, corpus: Sequence[Document]) -> VectorIndex:
        """Embed ``corpus`` into a new, built :class:`VectorIndex`."""
        index: VectorIndex = VectorIndex(dimension=self.embedder.dimension, backend=self.backend)
        vectors = await self.embedder.embed_many([doc.text for doc in corpus])
        for doc, vector in zip(corpus, vectors):
            index.add(doc, vector)
        return index.build()

    async def _vector_hits(
            self,
            query: str,
            corpus: Sequence[Document],
            k: int,
            index: Optional[VectorIndex],
        ) -> List[SearchHit]:
        if index is None:
            if not corpus:
                return []
            index = await self.build_index(corpus)
        if len(index) == 0:
            return []
        query_vector = await self.embedder.embed(query)
        return index.top_k(query_vector, k)

    async def retrieve(
            self,
            query: str,
            corpus: Sequence[Document],
            k: int,
            index: Optional[VectorIndex] = None,
        ) -> List[Candidate]:
        """Return the ``k`` passages most similar to ``query``."""
        if k <= 0:
            return []
        start = time.perf_counter()
        hits = await self._vector_hits(query, corpus, k, index)
        candidates = [
            Candidate(
                doc_id=hit.item.doc_id,
                text=hit.item.text,
                score=hit.score,
                source=RetrievalSource.VECTOR,
                metadata=dict(hit.item.metadata),
            )
            for hit in hits
        ]
        _log_timing(query, start, len(candidates))
        return candidates


class HybridRetriever(VectorRetriever):
    """Hybrid retriever combining vector similarity and BM25 keyword search.

    Each strategy contributes up to ``2k`` hits, which are merged with
    :func:`merge_candidates`. The merged list is not truncated; the re-ranker
    selects the final ``k``.

    Parameters
    ----------
    embedder : EmbeddingProvider
        Provider used to embed the corpus and the query.
    vector_weight : float, optional
        Weight of the cosine score. Defaults to ``0.7``.
    lexical_weight : float, optional
        Weight of the lexical score. Defaults to ``0.3``.
    backend : str, optional
        Vector index backend for ephemeral indices. Defaults to ``"exact"``.
    """

    def __init__(
            self,
            *,
            embedder: EmbeddingProvider,
            vector_weight: float = DEFAULT_VECTOR_WEIGHT,
            lexical_weight: float = DEFAULT_LEXICAL_WEIGHT,
            backend: str = "exact",
        ):
        super().__init__(embedder=embedder, backend=backend)
        self.vector_weight = float(vector_weight)
        self.lexical_weight = float(lexical_weight)

    async def retrieve(
            self,
            query: str,
            corpus: Sequence[Document],
            k: int,
            index: Optional[VectorIndex] = None,
        ) -> List[Candidate]:
        """Retrieve and merge vector and lexical candidates for ``query``."""
        if k <= 0:
            return []
        start = time.perf_counter()
        vector_hits = await self._vector_hits(query, corpus, 2 * k, index)
        lexical_hits = lexical_search(query, corpus, 2 * k)
        candidates = merge_candidates(
            vector_hits,
            lexical_hits,
            vector_weight=self.vector_weight,
            lexical_weight=self.lexical_weight,
        )
        _log_timing(query, start, len(candidates))
        return candidates


def _log_timing(query: str, start: float, count: int) -> None:
    logger.info(
        "retrieval_time_ms=%.1f results=%d query=%r",
        (time.perf_counter() - start) * 1000.0,
        count,
        query[:100],
    )


__all__ = [
    "VectorRetriever",
    "HybridRetriever",
    "lexical_search",
    "merge_candidates",
]
