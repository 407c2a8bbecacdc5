"""career_rag.retrieval.retriever_factory

Named construction of the passage retrievers.

Builders are keyed by the ``retriever.kind`` config value; ``hybrid`` is the
default and the only kind that reads the merge weights.

Functions
---------
register
    Add a builder to the registry.
create
    Build a retriever by kind.
create_from_config
    Construct a retriever from the ``retriever`` configuration section.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, Mapping, Optional

from career_rag.retrieval.embedder import EmbeddingProvider
from career_rag.retrieval.retriever import HybridRetriever, VectorRetriever
from career_rag.retrieval.types import Retriever

_BUILDERS: Dict[str, Callable[..., Retriever]] = {}


def register(name: str):
    """Add the decorated builder to the registry.

    Parameters
    ----------
    name : str
        Value of ``retriever.kind`` that selects the builder.

    Returns
    -------
    Callable
        Decorator returning the builder unchanged.
    """
    def _wrap(fn: Callable[..., Retriever]):
        _BUILDERS[name] = fn
        return fn
    return _wrap


def create(
    *,
    kind: str,
    embedder: EmbeddingProvider,
    **kwargs,
) -> Retriever:
    """Build the retriever registered as ``kind``.

    Parameters
    ----------
    kind : str
        Registered retriever kind to instantiate (``"vector"`` or ``"hybrid"``).
    embedder : EmbeddingProvider
        Embedding provider shared by the retriever.
    **kwargs : Any
        Passed through to the builder (``backend`` and the merge weights).

    Raises
    ------
    ValueError
        For an unregistered ``kind``.
    """
    if kind not in _BUILDERS:
        raise ValueError(f"Unknown retriever kind {kind!r}; expected one of {sorted(_BUILDERS)}")
    return _BUILDERS[kind](embedder=embedder, **kwargs)


def create_from_config(
    config: Optional[Mapping[str, Any]],
    *,
    embedder: EmbeddingProvider,
    backend: str = "exact",
) -> Retriever:
    """Create a retriever from the ``retriever`` configuration section."""
    cfg = dict(config or {})
    kind = str(cfg.get("kind", "hybrid")).strip().lower()

    kwargs: Dict[str, Any] = {"backend": backend}
    if kind == "hybrid":
        for key in ("vector_weight", "lexical_weight"):
            if key in cfg:
                kwargs[key] = float(cfg[key])
    return create(kind=kind, embedder=embedder, **kwargs)


@register("vector")
def _build_vector(**kw) -> Retriever:
    return VectorRetriever(**kw)


@register("hybrid")
def _build_hybrid(**kw) -> Retriever:
    return HybridRetriever(**kw)
