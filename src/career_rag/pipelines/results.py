"""career_rag.pipelines.results

Result models returned by :class:`~career_rag.pipelines.rag_pipeline.RAGPipeline`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from career_rag.generation.response_parser import RoleAnalysis


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RetrievedPassage(BaseModel):
    """A grounding passage that was placed in the prompt."""

    id: str
    text: str
    source: str
    relevance: Optional[float] = None
    score: float = 0.0
    retrieval: str = "vector"
    rerank_score: Optional[int] = None


class AnalysisResult(BaseModel):
    """Aggregate skills analysis of one document against one role."""

    role: str
    roles: list[RoleAnalysis] = Field(default_factory=list)
    skills_present: list[str] = Field(default_factory=list)
    skills_missing: list[str] = Field(default_factory=list)
    match_score: int = 0
    retrieved_passages: list[RetrievedPassage] = Field(default_factory=list)
    external_sources_used: int = 0
    rag_enhanced: bool = True
    model_used: str = "fallback"
    knowledge_base_version: int = 0
    analysis_timestamp: datetime = Field(default_factory=_utcnow)
    degraded_reason: Optional[str] = None


class SectionFinding(BaseModel):
    """Analysis of one resume chunk."""

    chunk_type: str
    line_range: tuple[int, int]
    text: str
    skills_found: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    relevance_score: int = 50
    degraded: bool = False


class SectionReport(BaseModel):
    """Section-by-section analysis aggregated over all chunks."""

    role: str
    sections: list[SectionFinding] = Field(default_factory=list)
    skills_present: list[str] = Field(default_factory=list)
    skills_missing: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    match_score: int = 0
    external_sources_used: int = 0
    rag_enhanced: bool = True
    model_used: str = "fallback"
    analysis_timestamp: datetime = Field(default_factory=_utcnow)
    degraded_reason: Optional[str] = None


__all__ = [
    "RetrievedPassage",
    "AnalysisResult",
    "SectionFinding",
    "SectionReport",
]
