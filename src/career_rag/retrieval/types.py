"""career_rag.retrieval.types

Shared type definitions for the retrieval layer.

This module defines lightweight protocol abstractions used to decouple the
pipeline from concrete retriever and re-ranker classes.

Classes
-------
Retriever
    Protocol defining the minimal retriever interface.
Reranker
    Protocol defining the minimal re-ranker interface.
"""

from typing import List, Optional, Protocol, Sequence

from career_rag.common.schemas import Candidate, Document
from career_rag.retrieval.vector_store import VectorIndex


class Retriever(Protocol):
    """Protocol defining the retriever interface.

    A retriever takes a natural-language query and a corpus of passages and
    returns a ranked list of candidates. Implementations may use vector
    similarity, keyword overlap, or a hybrid of both.
    """

    async def build_index(self, corpus: Sequence[Document]) -> VectorIndex:
        """Embed ``corpus`` into a built, request-scoped vector index."""
        ...

    async def retrieve(
            self,
            query: str,
            corpus: Sequence[Document],
            k: int,
            index: Optional[VectorIndex] = None,
        ) -> List[Candidate]:
        """Retrieve candidates for a query.

        Parameters
        ----------
        query : str
            Natural-language query string.
        corpus : Sequence[Document]
            Passages to search.
        k : int
            Number of results requested.
        index : VectorIndex, optional
            Prebuilt index over ``corpus``. When omitted an ephemeral index is
            built for the call.

        Returns
        -------
        list[Candidate]
            Ranked candidates.
        """
        ...


class Reranker(Protocol):
    """Protocol defining the re-ranker interface."""

    async def rerank(self, query: str, candidates: Sequence[Candidate], k: int) -> List[Candidate]:
        ...
