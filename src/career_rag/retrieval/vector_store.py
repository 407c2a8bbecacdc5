"""career_rag.retrieval.vector_store

In-memory vector index for the retrieval layer.

The index stores ``(item, vector)`` pairs, is frozen by :meth:`VectorIndex.build`
and answers cosine-similarity top-k queries. Two search backends are
available:

- ``exact``: exhaustive numpy scan (the default).
- ``qdrant``: an in-memory :mod:`qdrant_client` collection used to shortlist
  candidates, which are then re-scored exactly so that results are identical
  to the exhaustive scan.

Classes
-------
VectorIndex
    Build-once cosine similarity index.
StandardsIndex
    Process-wide index over knowledge-base requirements with a ready flag.

Functions
---------
cosine_similarity
    Cosine similarity of two equal-length vectors.
create_vector_index
    Create a vector index from a configuration mapping.
"""

import logging
import uuid
from typing import Any, Generic, List, Mapping, Optional, Sequence, TypeVar

import numpy as np

from career_rag.common.errors import DimensionMismatchError, IndexFrozenError
from career_rag.common.schemas import SearchHit

logger = logging.getLogger("career_rag.retrieval.vector_store")

T = TypeVar("T")

SUPPORTED_BACKENDS = ("exact", "qdrant")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of ``a`` and ``b``.

    Returns ``0.0`` when either vector has zero norm. The result is clamped to
    ``[-1, 1]`` to absorb floating point drift.

    Raises
    ------
    DimensionMismatchError
        If the vectors have different lengths.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (na * nb), -1.0, 1.0))


class VectorIndex(Generic[T]):
    """Build-once cosine similarity index.

    Parameters
    ----------
    dimension : int or None, optional
        Expected vector length. When ``None`` the first added vector fixes it.
    backend : str, optional
        ``"exact"`` (default) or ``"qdrant"``.
    """

    def __init__(
            self,
            dimension: Optional[int] = None,
            backend: str = "exact",
        ):
        if dimension is not None and dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        backend = (backend or "exact").strip().lower()
        if backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unknown vector index backend '{backend}'. Supported: {list(SUPPORTED_BACKENDS)}."
            )

        self.dimension = dimension
        self.backend = backend
        self._items: List[T] = []
        self._vectors: List[List[float]] = []
        self._matrix: Optional[np.ndarray] = None
        self._norms: Optional[np.ndarray] = None
        self._built = False

        self._client = None
        self._collection_name: Optional[str] = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_built(self) -> bool:
        return self._built

    def add(self, item: T, vector: Sequence[float]) -> None:
        """Append an item with its embedding.

        Raises
        ------
        IndexFrozenError
            If the index has already been built.
        DimensionMismatchError
            If ``vector`` does not match the index dimensionality.
        """
        if self._built:
            raise IndexFrozenError("Cannot add to a built vector index; build a new index instead.")
        if self.dimension is None:
            if len(vector) == 0:
                raise ValueError("Cannot add an empty vector.")
            self.dimension = len(vector)
        elif len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

        self._items.append(item)
        self._vectors.append([float(v) for v in vector])

    def build(self) -> "VectorIndex[T]":
        """Freeze the index and prepare the search backend. Idempotent."""
        if self._built:
            return self

        dim = self.dimension or 0
        self._matrix = np.asarray(self._vectors, dtype=np.float64).reshape(len(self._vectors), dim)
        self._norms = np.linalg.norm(self._matrix, axis=1) if len(self._vectors) else np.zeros(0)

        if self.backend == "qdrant" and len(self._items) > 0:
            self._build_qdrant()

        self._built = True
        logger.debug("Built %s vector index with %d items (dim=%s).", self.backend, len(self), self.dimension)
        return self

    def _build_qdrant(self) -> None:
        from qdrant_client import QdrantClient, models

        self._client = QdrantClient(location=":memory:")
        self._collection_name = f"career_rag_{uuid.uuid4().hex}"
        self._client.create_collection(
            collection_name=self._collection_name,
            vectors_config=models.VectorParams(size=self.dimension, distance=models.Distance.COSINE),
        )

        # Zero-norm vectors are not indexed; their similarity is always 0.
        points = [
            models.PointStruct(id=i, vector=self._vectors[i])
            for i in range(len(self._items))
            if self._norms[i] > 0.0
        ]
        if points:
            self._client.upsert(collection_name=self._collection_name, points=points)

    def _exact_scores(self, query: np.ndarray, qnorm: float) -> np.ndarray:
        denom = self._norms * qnorm
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(denom > 0.0, (self._matrix @ query) / denom, 0.0)
        return np.clip(scores, -1.0, 1.0)

    def _candidate_positions(self, query: np.ndarray, qnorm: float, scores: np.ndarray, k: int) -> List[int]:
        if self.backend != "qdrant" or self._client is None or qnorm == 0.0:
            return list(range(len(self._items)))

        limit = min(len(self._items), max(2 * k, k + 10))
        response = self._client.query_points(
            collection_name=self._collection_name,
            query=query.tolist(),
            limit=limit,
        )
        shortlisted = sorted({int(p.id) for p in response.points}, key=lambda i: -scores[i])
        if len(shortlisted) < k:
            return list(range(len(self._items)))

        # Every item scoring at least the k-th shortlisted score can still reach
        # the top k, including tied items inserted before those qdrant returned.
        threshold = scores[shortlisted[k - 1]]
        return [int(i) for i in np.flatnonzero(scores >= threshold)]

    def top_k(self, query: Sequence[float], k: int) -> List[SearchHit]:
        """Return the ``k`` most similar items in descending similarity.

        Ties keep insertion order. An empty index or ``k <= 0`` yields ``[]``.
        Querying an unbuilt index builds it first.

        Raises
        ------
        DimensionMismatchError
            If ``query`` does not match the index dimensionality.
        """
        if k <= 0 or len(self._items) == 0:
            return []
        if len(query) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(query))
        if not self._built:
            self.build()

        q = np.asarray(query, dtype=np.float64)
        qnorm = float(np.linalg.norm(q))
        scores = self._exact_scores(q, qnorm)

        positions = self._candidate_positions(q, qnorm, scores, k)
        ranked = sorted(positions, key=lambda i: (-scores[i], i))[:k]
        return [SearchHit(self._items[i], float(scores[i])) for i in ranked]


class StandardsIndex:
    """Persistent index over knowledge-base requirement strings.

    Built once at startup and read-only afterwards. Until :meth:`mark_ready`
    is called, :attr:`is_ready` is false and callers skip it.
    """

    def __init__(self, index: Optional[VectorIndex] = None):
        self.index: VectorIndex = index if index is not None else VectorIndex()
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        self.index.build()
        self._ready = True

    def top_k(self, query: Sequence[float], k: int) -> List[SearchHit]:
        if not self._ready:
            return []
        return self.index.top_k(query, k)


def create_vector_index(
    config: Optional[Mapping[str, Any]] = None,
    dimension: Optional[int] = None,
) -> VectorIndex:
    """Create a :class:`VectorIndex` from the ``vector_index`` config section."""
    config = dict(config or {})
    backend = config.get("backend", "exact")
    return VectorIndex(dimension=dimension, backend=backend)


__all__ = [
    "VectorIndex",
    "StandardsIndex",
    "cosine_similarity",
    "create_vector_index",
]
