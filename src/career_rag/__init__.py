"""career_rag

Retrieval-augmented resume analysis core for career coaching.

This package analyses a resume against a target role: it collects role
passages from a static knowledge base, retrieves the most relevant ones with a
request-scoped vector index, grounds an LLM prompt with them, and aggregates
the response with deterministic keyword extraction. Every stage degrades
gracefully when a model is unavailable.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader and cached accessors.
app
    Application container and HTTP service.
pipelines
    Analysis orchestration (collect → retrieve → generate → aggregate).
retrieval
    Chunking, embedding, vector index, retrievers and re-ranking.
generation
    LLM clients, prompt templates and response parsing.
knowledge
    Role knowledge base and keyword skill extraction.
common
    Shared schemas, errors and tokenisation helpers.

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
CareerRAGContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured :class:`~career_rag.app.container.CareerRAGContainer`.
RAGPipeline
    End-to-end analysis pipeline.
Document
    Grounding passage schema.
Chunk
    Resume chunk schema.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("career-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import CareerRAGContainer, build_container
from .pipelines.rag_pipeline import RAGPipeline
from .common import Chunk, Document

__all__ = [
    "__version__",
    "GlobalConfig",
    "CareerRAGContainer",
    "build_container",
    "RAGPipeline",
    "Document",
    "Chunk",
]
