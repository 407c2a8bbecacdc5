"""career_rag.retrieval.reranker

Re-ranker abstractions and implementations for retrieval candidates.

This module defines:
- an abstract re-ranker interface
- an LLM relevance-rating re-ranker with a timeout and a no-op fallback
- a pass-through re-ranker
- the parser for the ``INDEX:<n> SCORE:<m>`` rating format
- a small re-ranker factory for configuration-driven construction
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Mapping, Optional, Sequence

from career_rag.common.schemas import Candidate, ScoredRelevance
from career_rag.generation.llm_interface import BaseLLM
from career_rag.generation.prompt_builder import PromptBuilder

logger = logging.getLogger("career_rag.retrieval.reranker")

DEFAULT_RELEVANCE = 50
DEFAULT_RERANK_TIMEOUT = 15.0
RELEVANCE_PROMPT = "relevance_rating"

_INDEX_PATTERN = re.compile(r"INDEX:\s*(\d+)")
_SCORE_PATTERN = re.compile(r"SCORE:\s*(\d+)")


def parse_relevance_scores(response: str, count: int) -> list[ScoredRelevance]:
    """Parse ``INDEX:<n> SCORE:<m>`` lines into one score per candidate.

    Lines with an index outside ``[0, count)`` or a score outside ``[0, 100]``
    are ignored. Candidates without a valid line keep the default of 50. A
    later line for the same index overrides an earlier one.

    Parameters
    ----------
    response : str
        Raw rating text.
    count : int
        Number of candidates that were rated.

    Returns
    -------
    list[ScoredRelevance]
        Exactly ``count`` entries, in index order.
    """
    scores = [DEFAULT_RELEVANCE] * max(count, 0)

    for line in (response or "").splitlines():
        index_match = _INDEX_PATTERN.search(line)
        score_match = _SCORE_PATTERN.search(line)
        if not index_match or not score_match:
            continue
        index = int(index_match.group(1))
        score = int(score_match.group(1))
        if 0 <= index < count and 0 <= score <= 100:
            scores[index] = score

    return [ScoredRelevance(index=i, score=s) for i, s in enumerate(scores)]


class BaseReranker(ABC):
    """Abstract interface for re-ranking retrieval candidates."""

    @abstractmethod
    async def rerank(self, query: str, candidates: Sequence[Candidate], k: int) -> list[Candidate]:
        """Return at most ``k`` candidates in re-ranked order."""
        raise NotImplementedError


class PassthroughReranker(BaseReranker):
    """Re-ranker that keeps the incoming order."""

    async def rerank(self, query: str, candidates: Sequence[Candidate], k: int) -> list[Candidate]:
        return list(candidates[:max(k, 0)])


class LLMReranker(BaseReranker):
    """Re-ranker that asks an LLM to rate each candidate from 0 to 100.

    Candidates are annotated with their ``relevance`` and stable-sorted by
    it. Any failure of the rating call (exception, timeout, non-text
    response) returns ``candidates[:k]`` unchanged.

    Parameters
    ----------
    llm : BaseLLM
        Relevance-scoring collaborator.
    prompt_builder : PromptBuilder
        Builder holding the ``relevance_rating`` template.
    timeout : float, optional
        Seconds allowed for the rating call. Defaults to 15.
    """

    def __init__(
            self,
            *,
            llm: BaseLLM,
            prompt_builder: PromptBuilder,
            timeout: float = DEFAULT_RERANK_TIMEOUT,
            prompt_name: str = RELEVANCE_PROMPT,
            max_tokens: int = 200,
        ):
        self.llm = llm
        self.prompt_builder = prompt_builder
        self.timeout = timeout
        self.prompt_name = prompt_name
        self.max_tokens = max_tokens

    async def _rate(self, query: str, candidates: Sequence[Candidate]) -> str:
        prompt = self.prompt_builder.build(self.prompt_name, query=query, candidates=candidates)
        response = await asyncio.wait_for(
            self.llm.acomplete(prompt, temperature=0.1, max_tokens=self.max_tokens),
            timeout=self.timeout,
        )
        if not isinstance(response, str):
            raise TypeError(f"Relevance rating returned {type(response).__name__}, expected str")
        return response

    async def rerank(self, query: str, candidates: Sequence[Candidate], k: int) -> list[Candidate]:
        """Re-rank ``candidates`` by LLM relevance and keep the top ``k``.

        Never raises; on failure the first ``k`` candidates are returned in
        their incoming order.
        """
        if k <= 0 or not candidates:
            return []

        start = time.perf_counter()
        try:
            response = await self._rate(query, candidates)
        except asyncio.TimeoutError:
            logger.warning("Re-ranking timed out after %.1fs; keeping retrieval order.", self.timeout)
            return list(candidates[:k])
        except Exception as exc:
            logger.warning("Re-ranking failed (%s); keeping retrieval order.", exc)
            return list(candidates[:k])

        scores = parse_relevance_scores(response, len(candidates))
        annotated = [replace(c, relevance=s.score) for c, s in zip(candidates, scores)]
        annotated.sort(key=lambda c: c.relevance, reverse=True)

        logger.info(
            "rerank_time_ms=%.1f candidates=%d kept=%d",
            (time.perf_counter() - start) * 1000.0,
            len(candidates),
            min(k, len(annotated)),
        )
        return annotated[:k]


def create_reranker(
        *,
        config: Mapping[str, Any] | None,
        llm: Optional[BaseLLM] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> BaseReranker:
    """Create a re-ranker from the ``reranker`` configuration section.

    ``type: llm`` (the default) requires an LLM; without one a
    :class:`PassthroughReranker` is returned. ``type: none`` always returns
    the pass-through re-ranker.
    """
    cfg = dict(config or {})
    kind = str(cfg.get("type", "llm")).lower().strip()

    if kind in ("none", "passthrough"):
        return PassthroughReranker()

    if kind == "llm":
        if llm is None or prompt_builder is None:
            logger.warning("LLM re-ranker requested without an LLM; using pass-through re-ranking.")
            return PassthroughReranker()
        return LLMReranker(
            llm=llm,
            prompt_builder=prompt_builder,
            timeout=float(cfg.get("timeout", DEFAULT_RERANK_TIMEOUT)),
            max_tokens=int(cfg.get("max_tokens", 200)),
        )

    raise ValueError(f"Unsupported rerank type {kind!r}. Supported rerankers: ['llm', 'none'].")


__all__ = [
    "BaseReranker",
    "LLMReranker",
    "PassthroughReranker",
    "parse_relevance_scores",
    "create_reranker",
]
