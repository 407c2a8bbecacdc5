"""career_rag.app.container

Composition root for the career RAG system.

This module is the single place where concrete implementations are wired
together from configuration (knowledge base, prompts, embedder, LLM clients,
retriever, re-ranker, standards index and the analysis pipeline). Components
are constructed lazily and cached on first access.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
- The persistent standards index is built by :meth:`CareerRAGContainer.warm_up`,
  which the service calls once during startup.

Examples
--------
>>> from career_rag.config import GlobalConfig
>>> from career_rag.app.container import build_container
>>> c = build_container(GlobalConfig.load("config/config.yaml"))
>>> await c.warm_up()
>>> result = await c.pipeline.analyze(resume_text, "data-analyst")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Mapping, Optional

logger = logging.getLogger("career_rag.app.container")


@dataclass(frozen=True)
class CareerRAGContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`career_rag.config.GlobalConfig`).
    """

    config: Any

    @cached_property
    def knowledge_base(self):
        from career_rag.knowledge import load_knowledge_base

        return load_knowledge_base(self.config.knowledge_base, base_dir=self.config.base_dir)

    @cached_property
    def prompt_builder(self):
        """Return the prompt builder loaded from ``config.prompts``.

        Prompt sources are resolved relative to the loaded config file
        directory (when available), not the current working directory.
        """
        from career_rag.generation.prompt_builder import PromptBuilder

        builder = PromptBuilder.from_sources(self.config.prompts, base_dir=self.config.base_dir)
        builder.require(("roles_analysis", "section_analysis"))
        return builder

    @cached_property
    def embedder(self):
        """Return the :class:`~career_rag.retrieval.embedder.EmbeddingProvider`."""
        from career_rag.retrieval.embedder import create_embedding_provider

        return create_embedding_provider(_as_mapping(self.config.embedder))

    @cached_property
    def generator_llm(self):
        """Return the generation LLM, or ``None`` when it is not configured."""
        section = self.config.generator_llm
        if section is None:
            logger.warning("No generator_llm configured; analyses will use fallback mode.")
            return None

        from career_rag.generation.llm_interface import create_llm

        return create_llm(dict(_as_mapping(section)))

    @cached_property
    def reranker_llm(self):
        """Return the relevance-scoring LLM (``reranker.llm`` or the generator LLM)."""
        section = _as_mapping(self.config.reranker).get("llm")
        if section is None:
            return self.generator_llm

        from career_rag.generation.llm_interface import create_llm

        return create_llm(dict(_as_mapping(section)))

    @cached_property
    def reranker(self):
        from career_rag.retrieval.reranker import create_reranker

        return create_reranker(
            config=_as_mapping(self.config.reranker),
            llm=self.reranker_llm,
            prompt_builder=self.prompt_builder,
        )

    @cached_property
    def index_backend(self) -> str:
        return str(_as_mapping(self.config.vector_index).get("backend", "exact"))

    @cached_property
    def retriever(self):
        from career_rag.retrieval.retriever_factory import create_from_config

        return create_from_config(
            _as_mapping(self.config.retriever),
            embedder=self.embedder,
            backend=self.index_backend,
        )

    @cached_property
    def standards_index(self):
        """Return the (initially not ready) persistent standards index."""
        from career_rag.retrieval.vector_store import StandardsIndex, create_vector_index

        index = create_vector_index(_as_mapping(self.config.vector_index), dimension=self.embedder.dimension)
        return StandardsIndex(index)

    @cached_property
    def pipeline(self):
        from career_rag.pipelines.rag_pipeline import RAGPipeline

        retriever_cfg = _as_mapping(self.config.retriever)
        generation_cfg = _as_mapping(self.config.generation)
        chunking_cfg = _as_mapping(self.config.chunking)

        llm_defaults = {
            "temperature": float(generation_cfg.get("temperature", 0.2)),
            "max_tokens": int(generation_cfg.get("max_tokens", 2048)),
        }

        return RAGPipeline(
            knowledge_base=self.knowledge_base,
            embedder=self.embedder,
            retriever=self.retriever,
            prompt_builder=self.prompt_builder,
            llm=self.generator_llm,
            reranker=self.reranker,
            standards_index=self.standards_index,
            top_k=int(retriever_cfg.get("top_k", 6)),
            generation_timeout=float(generation_cfg.get("timeout", 30.0)),
            max_passages=int(retriever_cfg.get("max_passages", 10)),
            llm_generate_defaults=llm_defaults,
            max_chunk_chars=int(chunking_cfg.get("max_chunk_chars", 500)),
        )

    async def warm_up(self) -> None:
        """Build the persistent standards index from the knowledge base.

        Idempotent. Until this completes the pipeline skips the index.
        """
        standards = self.standards_index
        if standards.is_ready:
            return

        corpus = self.knowledge_base.standards_corpus()
        vectors = await self.embedder.embed_many([text for _, text in corpus])
        for item, vector in zip(corpus, vectors):
            standards.index.add(item, vector)
        standards.mark_ready()
        logger.info("Standards index ready with %d statements.", len(corpus))


def build_container(config: Any) -> CareerRAGContainer:
    """Create a :class:`CareerRAGContainer`.

    Single entry point for the FastAPI lifespan hook, CLI scripts and tests.
    """
    return CareerRAGContainer(config=config)


def _as_mapping(obj: Optional[Any]) -> Mapping[str, Any]:
    """Coerce ``obj`` into a mapping (``None`` becomes an empty mapping).

    Raises
    ------
    TypeError
        If ``obj`` cannot be interpreted as a mapping.
    """
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return obj
    if hasattr(obj, "__dict__"):
        return dict(vars(obj))
    raise TypeError(f"Expected mapping type but got {type(obj)}")


__all__ = ["CareerRAGContainer", "build_container"]
