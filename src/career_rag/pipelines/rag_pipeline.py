"""career_rag.pipelines.rag_pipeline

End-to-end Retrieval-Augmented Generation (RAG) analysis pipeline.

This module defines :class:`RAGPipeline`, which analyses a resume against a
target role. A request runs through the following stages:

1. COLLECT: gather role passages from the knowledge base, the simulated
   job-board search and the persistent standards index.
2. INDEX: embed the passages into a request-scoped vector index.
3. RETRIEVE: retrieve and re-rank the passages most relevant to the resume.
4. GROUND: render the ``roles_analysis`` prompt.
5. GENERATE: call the generation LLM with a timeout.
6. AGGREGATE: merge the parsed payload with keyword skill extraction.

Generation problems (not configured, timeout, transport error, unparseable
output) produce a degraded result built from the knowledge base. Only a
:class:`~career_rag.common.errors.ConfigurationError` from the LLM becomes a
hard :class:`~career_rag.common.errors.AnalysisFailedError`.

Classes
-------
RAGPipeline
    Orchestrates collection, retrieval, generation and aggregation.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from career_rag.common.errors import (
    AnalysisFailedError,
    ConfigurationError,
    DegradedModeError,
    MalformedResponseError,
)
from career_rag.common.schemas import Candidate, Chunk, Document
from career_rag.generation.llm_interface import BaseLLM
from career_rag.generation.prompt_builder import PromptBuilder
from career_rag.generation.response_parser import (
    GenerationPayload,
    SectionAnalysis,
    parse_generation_payload,
    parse_section_analysis,
)
from career_rag.knowledge.knowledge_base import KnowledgeBase, SourcePassage
from career_rag.knowledge.skills import coverage_score, extract_skills, skill_gaps
from career_rag.pipelines.results import (
    AnalysisResult,
    RetrievedPassage,
    SectionFinding,
    SectionReport,
)
from career_rag.retrieval.embedder import EmbeddingProvider
from career_rag.retrieval.reranker import BaseReranker, PassthroughReranker
from career_rag.retrieval.text_splitter import chunk_document
from career_rag.retrieval.types import Retriever
from career_rag.retrieval.vector_store import StandardsIndex, VectorIndex

logger = logging.getLogger("career_rag.pipelines.rag_pipeline")

STANDARDS_RELEVANCE = 0.9
STANDARDS_INDEX_K = 6
STANDARDS_INDEX_RELEVANCE_BOUNDS = (0.5, 0.99)
FALLBACK_SECTION_RELEVANCE = 60
DEFAULT_SECTION_RELEVANCE = 50
MAX_RECOMMENDATIONS = 5
RERANK_QUERY_CHARS = 1000
FALLBACK_MODEL = "fallback"


def _unique(values: Iterable[str]) -> List[str]:
    """De-duplicate case-insensitively, keeping the first spelling and order."""
    seen = set()
    out = []
    for value in values:
        key = value.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(value.strip())
    return out


def _clamp_score(value: float) -> int:
    return int(round(min(100.0, max(0.0, float(value)))))


def _role_query(role: str, job_description: Optional[str]) -> str:
    query = role.replace("-", " ").replace("_", " ")
    if job_description:
        query = f"{query}\n{job_description}"
    return query


class RAGPipeline:
    """Resume analysis orchestrator.

    The pipeline is stateless beyond its configured components and is safe to
    share across concurrent requests: every index, candidate list and chunk is
    created per call.

    Parameters
    ----------
    knowledge_base : KnowledgeBase
        Static role tables.
    embedder : EmbeddingProvider
        Embedding provider used for the standards index query.
    retriever : Retriever
        Vector or hybrid retriever.
    prompt_builder : PromptBuilder
        Builder holding the ``roles_analysis`` and ``section_analysis`` templates.
    llm : BaseLLM or None, optional
        Generation collaborator. ``None`` always yields degraded results.
    reranker : BaseReranker or None, optional
        Re-ranker applied after retrieval. Defaults to pass-through.
    standards_index : StandardsIndex or None, optional
        Persistent standards index; skipped while not ready.
    top_k : int, optional
        Number of passages placed in the prompt. Defaults to 6.
    generation_timeout : float, optional
        Seconds allowed for one generation call. Defaults to 30.
    max_passages : int, optional
        Cap on collected passages. Defaults to 10.
    llm_generate_defaults : dict or None, optional
        Keyword arguments forwarded to ``llm.acomplete``.
    max_chunk_chars : int, optional
        Chunk size for section analysis. Defaults to 500.
    """

    def __init__(
            self,
            *,
            knowledge_base: KnowledgeBase,
            embedder: EmbeddingProvider,
            retriever: Retriever,
            prompt_builder: PromptBuilder,
            llm: Optional[BaseLLM] = None,
            reranker: Optional[BaseReranker] = None,
            standards_index: Optional[StandardsIndex] = None,
            top_k: int = 6,
            generation_timeout: float = 30.0,
            max_passages: int = 10,
            llm_generate_defaults: Optional[Dict[str, Any]] = None,
            max_chunk_chars: int = 500,
        ):
        self.knowledge_base = knowledge_base
        self.embedder = embedder
        self.retriever = retriever
        self.prompt_builder = prompt_builder
        self.llm = llm
        self.reranker = reranker or PassthroughReranker()
        self.standards_index = standards_index
        self.top_k = top_k
        self.generation_timeout = generation_timeout
        self.max_passages = max_passages
        self.max_chunk_chars = max_chunk_chars
        self.llm_generate_defaults = llm_generate_defaults or {
            "temperature": 0.2,
            "max_tokens": 2048,
        }

    # ----------------- COLLECT -----------------

    async def _standards_index_passages(self, role: str, query: str) -> List[SourcePassage]:
        if self.standards_index is None or not self.standards_index.is_ready:
            logger.warning("Standards index not ready; skipping it for role %r.", role)
            return []

        low, high = STANDARDS_INDEX_RELEVANCE_BOUNDS
        query_vector = await self.embedder.embed(query)
        passages = []
        for hit in self.standards_index.top_k(query_vector, STANDARDS_INDEX_K):
            hit_role, text = hit.item
            if hit_role != role:
                continue
            relevance = max(low, min(high, hit.score))
            passages.append(SourcePassage(text, "standards_index", relevance, hit_role))
        return passages

    async def collect_passages(self, role: str, job_description: Optional[str] = None) -> List[Document]:
        """Collect, de-duplicate and rank grounding passages for ``role``.

        Returns
        -------
        list[Document]
            At most ``max_passages`` passages with ids ``src1..srcN`` in
            descending relevance. Metadata carries ``source``, ``relevance``
            and ``role``.
        """
        query = _role_query(role, job_description)
        found: List[SourcePassage] = [
            SourcePassage(text, "industry_standards", STANDARDS_RELEVANCE, role)
            for text in self.knowledge_base.standards_for(role)
        ]
        found.extend(self.knowledge_base.search_job_boards(query, role))
        found.extend(await self._standards_index_passages(role, query))

        best: Dict[str, SourcePassage] = {}
        for passage in found:
            current = best.get(passage.text)
            if current is None or passage.relevance > current.relevance:
                best[passage.text] = passage

        ranked = sorted(best.values(), key=lambda p: p.relevance, reverse=True)[: self.max_passages]
        return [
            Document(
                text=p.text,
                doc_id=f"src{i}",
                metadata={"source": p.source, "relevance": round(p.relevance, 4), "role": p.role},
            )
            for i, p in enumerate(ranked, start=1)
        ]

    # ----------------- INDEX + RETRIEVE -----------------

    async def _retrieve(
            self,
            query: str,
            passages: Sequence[Document],
            index: VectorIndex,
            *,
            rerank: bool = True,
        ) -> List[Candidate]:
        candidates = await self.retriever.retrieve(query, passages, self.top_k, index=index)
        if not rerank:
            return candidates[: self.top_k]
        return await self.reranker.rerank(query[:RERANK_QUERY_CHARS], candidates, self.top_k)

    # ----------------- GENERATE -----------------

    async def _generate(self, prompt: str) -> str:
        """Call the generation LLM.

        Raises
        ------
        AnalysisFailedError
            If the LLM reports a configuration problem.
        DegradedModeError
            For every recoverable failure.
        """
        if self.llm is None:
            raise DegradedModeError("Generation model is not configured")

        try:
            raw = await asyncio.wait_for(
                self.llm.acomplete(prompt, **self.llm_generate_defaults),
                timeout=self.generation_timeout,
            )
        except ConfigurationError as exc:
            logger.error("Generation model is misconfigured: %s", exc)
            raise AnalysisFailedError("generation", str(exc), exc.details) from exc
        except asyncio.TimeoutError as exc:
            raise DegradedModeError(f"Generation timed out after {self.generation_timeout:.0f}s") from exc
        except Exception as exc:
            raise DegradedModeError(f"Generation failed: {exc}") from exc

        if not isinstance(raw, str):
            raise MalformedResponseError(f"Generation returned {type(raw).__name__}, expected text")
        return raw

    # ----------------- AGGREGATE -----------------

    def aggregate(
            self,
            payload: Optional[GenerationPayload],
            document_text: str,
            role: str,
        ) -> Tuple[List[str], List[str], int]:
        """Combine a parsed payload with keyword extraction.

        Returns
        -------
        tuple[list[str], list[str], int]
            ``(skills_present, skills_missing, match_score)``.
        """
        kb = self.knowledge_base
        present: List[str] = []
        missing: List[str] = []
        confidences: List[float] = []

        if payload is not None:
            for analysis in payload.roles:
                present.extend(analysis.matched_skills)
                missing.extend(analysis.missing_required_skills)
                missing.extend(analysis.missing_preferred_skills)
                if analysis.confidence is not None:
                    confidences.append(analysis.confidence)
            present.extend(payload.skills_present)
            missing.extend(payload.skills_missing)

        present = _unique(present + extract_skills(document_text, kb.skill_aliases))
        missing = _unique(missing) or skill_gaps(kb, role, present)

        if confidences:
            score = sum(confidences) / len(confidences)
        elif payload is not None and payload.match_score is not None:
            score = payload.match_score
        else:
            score = coverage_score(kb, role, present)

        return present, missing, _clamp_score(score)

    # ----------------- Public API -----------------

    async def analyze(
            self,
            document_text: str,
            role: str,
            job_description: Optional[str] = None,
        ) -> AnalysisResult:
        """Analyse ``document_text`` against ``role``.

        Parameters
        ----------
        document_text : str
            Resume text.
        role : str
            Target role key (e.g., ``"data-analyst"``).
        job_description : str or None, optional
            Optional job description used for collection and grounding.

        Returns
        -------
        AnalysisResult
            The analysis; ``rag_enhanced`` is false for degraded results.

        Raises
        ------
        AnalysisFailedError
            If the generation LLM is misconfigured.
        """
        start = time.perf_counter()

        passages = await self.collect_passages(role, job_description)
        index = await self.retriever.build_index(passages)
        retrieved = await self._retrieve(document_text, passages, index)

        prompt = self.prompt_builder.build(
            "roles_analysis",
            document_text=document_text,
            job_description=job_description,
            role=role,
            profile=self.knowledge_base.profile_for(role),
            passages=[
                {"id": c.doc_id, "source": c.metadata.get("source", "source"), "text": c.text}
                for c in retrieved
            ],
        )

        payload: Optional[GenerationPayload] = None
        degraded_reason: Optional[str] = None
        try:
            raw = await self._generate(prompt)
            payload = parse_generation_payload(raw)
        except DegradedModeError as exc:
            degraded_reason = exc.message
            logger.warning("Analysis for role %r degraded: %s", role, exc)

        present, missing, score = self.aggregate(payload, document_text, role)

        result = AnalysisResult(
            role=role,
            roles=payload.roles if payload is not None else [],
            skills_present=present,
            skills_missing=missing,
            match_score=score,
            retrieved_passages=[
                RetrievedPassage(
                    id=c.doc_id,
                    text=c.text,
                    source=str(c.metadata.get("source", "")),
                    relevance=c.metadata.get("relevance"),
                    score=c.score,
                    retrieval=c.source.value,
                    rerank_score=c.relevance,
                )
                for c in retrieved
            ],
            external_sources_used=len(passages),
            rag_enhanced=payload is not None,
            model_used=self.llm.model_name if payload is not None else FALLBACK_MODEL,
            knowledge_base_version=self.knowledge_base.version,
            degraded_reason=degraded_reason,
        )
        logger.info(
            "analysis_time_ms=%.1f role=%s rag_enhanced=%s match_score=%d",
            (time.perf_counter() - start) * 1000.0,
            role,
            result.rag_enhanced,
            result.match_score,
        )
        return result

    async def _analyze_chunk(
            self,
            chunk: Chunk,
            role: str,
            passages: Sequence[Document],
            index: VectorIndex,
        ) -> SectionFinding:
        context = await self._retrieve(chunk.text, passages, index, rerank=False)
        try:
            prompt = self.prompt_builder.build(
                "section_analysis",
                chunk=chunk,
                role=role,
                passages=[{"source": c.metadata.get("source", "source"), "text": c.text} for c in context],
            )
            analysis: SectionAnalysis = parse_section_analysis(await self._generate(prompt))
        except DegradedModeError as exc:
            logger.warning("Section analysis fell back for %s chunk: %s", chunk.type, exc)
            skills = extract_skills(chunk.text, self.knowledge_base.skill_aliases)
            return SectionFinding(
                chunk_type=chunk.type,
                line_range=chunk.line_range,
                text=chunk.text,
                skills_found=skills,
                gaps=skill_gaps(self.knowledge_base, role, skills),
                relevance_score=FALLBACK_SECTION_RELEVANCE,
                degraded=True,
            )

        relevance = analysis.relevance_score
        return SectionFinding(
            chunk_type=chunk.type,
            line_range=chunk.line_range,
            text=chunk.text,
            skills_found=analysis.skills_found,
            strengths=analysis.strengths,
            gaps=analysis.gaps,
            recommendations=analysis.recommendations,
            relevance_score=_clamp_score(relevance if relevance is not None else DEFAULT_SECTION_RELEVANCE),
        )

    async def analyze_sections(
            self,
            document_text: str,
            role: str,
            job_description: Optional[str] = None,
        ) -> SectionReport:
        """Analyse each resume chunk against the collected role context.

        Chunks are analysed concurrently. A chunk whose analysis fails falls
        back to keyword skills and requirement gaps with relevance 60.

        Raises
        ------
        AnalysisFailedError
            If the generation LLM is misconfigured. Analyses still running for
            other chunks are cancelled first.
        """
        passages = await self.collect_passages(role, job_description)
        index = await self.retriever.build_index(passages)
        chunks = chunk_document(document_text, self.max_chunk_chars)

        tasks = [asyncio.ensure_future(self._analyze_chunk(c, role, passages, index)) for c in chunks]
        try:
            sections = list(await asyncio.gather(*tasks))
        except BaseException:
            # One failed chunk fails the request; the remaining chunks are
            # cancelled and awaited so no task is left running or unretrieved.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        analysed = [s for s in sections if not s.degraded]
        match_score = (
            round(sum(s.relevance_score for s in sections) / len(sections)) if sections else 0
        )
        degraded_reason = None
        if sections and not analysed:
            degraded_reason = "Section analysis unavailable for every section"
        elif not sections:
            degraded_reason = "Document contains no text"

        return SectionReport(
            role=role,
            sections=sections,
            skills_present=_unique(skill for s in sections for skill in s.skills_found),
            skills_missing=_unique(gap for s in sections for gap in s.gaps),
            strengths=_unique(strength for s in sections for strength in s.strengths),
            recommendations=_unique(rec for s in sections for rec in s.recommendations)[:MAX_RECOMMENDATIONS],
            match_score=match_score,
            external_sources_used=len(passages),
            rag_enhanced=bool(analysed),
            model_used=self.llm.model_name if analysed else FALLBACK_MODEL,
            degraded_reason=degraded_reason,
        )


__all__ = ["RAGPipeline"]
