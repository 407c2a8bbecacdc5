import asyncio
import json

import pytest

from career_rag.common.errors import AnalysisFailedError, ConfigurationError
from career_rag.generation.response_parser import parse_generation_payload
from career_rag.pipelines.rag_pipeline import RAGPipeline
from career_rag.retrieval.embedder import EmbeddingProvider
from career_rag.retrieval.retriever import HybridRetriever
from career_rag.retrieval.vector_store import StandardsIndex, VectorIndex

RESUME = "Skills: Python, SQL\nExperience: 2 years data analyst"

ROLES_RESPONSE = json.dumps(
    {
        "roles": [
            {
                "matched_skills": ["Python", "SQL"],
                "missing_required_skills": [{"skill": "Tableau"}],
                "confidence": 80,
            }
        ]
    }
)

SECTION_RESPONSE = json.dumps(
    {
        "skills_found": ["SQL"],
        "strengths": ["Quantified impact"],
        "gaps": ["Tableau"],
        "recommendations": ["Add a dashboard project"],
        "relevance_score": 70,
    }
)

LONG_RESUME = "\n".join(
    [
        "Professional Summary",
        "Analyst with SQL and Python experience.",
        "Work Experience",
        "Built weekly reporting in SQL for finance.",
        "Education",
        "BSc Statistics",
    ]
)


def _make_pipeline(knowledge_base, prompt_builder, llm=None, **kwargs) -> RAGPipeline:
    """
    Build a pipeline over the packaged knowledge base with hash embeddings.
    """
    provider = EmbeddingProvider(dimension=128)
    return RAGPipeline(
        knowledge_base=knowledge_base,
        embedder=provider,
        retriever=HybridRetriever(embedder=provider),
        prompt_builder=prompt_builder,
        llm=llm,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_analyze_with_generation(knowledge_base, prompt_builder, fake_llm):
    """
    Test a grounded analysis where the model returns the per-role shape.
    """
    llm = fake_llm(ROLES_RESPONSE)
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    result = await pipeline.analyze(RESUME, "data-analyst")

    assert {"Python", "SQL"} <= set(result.skills_present)
    assert "Tableau" in result.skills_missing
    assert result.match_score == 80
    assert result.rag_enhanced is True
    assert result.model_used == "fake-model"
    assert result.degraded_reason is None
    assert result.knowledge_base_version == knowledge_base.version
    assert result.roles[0].confidence == 80.0


@pytest.mark.asyncio
async def test_analyze_grounds_prompt_with_retrieved_passages(knowledge_base, prompt_builder, fake_llm):
    """
    Test that the prompt carries the resume, the role and the retrieved passages.
    """
    llm = fake_llm(ROLES_RESPONSE)
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm, top_k=4)

    result = await pipeline.analyze(RESUME, "data-analyst", job_description="Looking for SQL reporting")

    prompt = llm.prompts[0]
    assert RESUME in prompt
    assert "Looking for SQL reporting" in prompt
    assert 0 < len(result.retrieved_passages) <= 4
    for passage in result.retrieved_passages:
        assert passage.text in prompt
        assert passage.id.startswith("src")
    assert result.external_sources_used == 10
    assert llm.calls[0] == {"temperature": 0.2, "max_tokens": 2048}


@pytest.mark.asyncio
async def test_analyze_prompt_includes_role_profile(knowledge_base, prompt_builder, fake_llm):
    """
    Test that the role's typical skills and responsibilities reach the prompt.
    """
    llm = fake_llm(ROLES_RESPONSE)
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    await pipeline.analyze(RESUME, "data-analyst")

    prompt = llm.prompts[0]
    assert "Typical Skills: SQL, Python, R, Tableau, Power BI" in prompt
    assert "Stakeholder communication" in prompt


@pytest.mark.asyncio
async def test_analyze_degrades_when_generation_fails(knowledge_base, prompt_builder, fake_llm):
    """
    Test the keyword fallback when the model raises.
    """
    llm = fake_llm(error=RuntimeError("503 Service Unavailable"))
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    result = await pipeline.analyze(RESUME, "data-analyst")

    assert {"Python", "SQL"} <= set(result.skills_present)
    assert result.skills_missing == ["Tableau", "Statistics", "Machine Learning"]
    assert result.match_score == 40
    assert result.rag_enhanced is False
    assert result.model_used == "fallback"
    assert "503" in result.degraded_reason
    assert result.retrieved_passages


@pytest.mark.asyncio
async def test_analyze_without_model_is_degraded(knowledge_base, prompt_builder):
    """
    Test that an unconfigured model yields a degraded result.
    """
    result = await _make_pipeline(knowledge_base, prompt_builder).analyze(RESUME, "data-analyst")

    assert result.rag_enhanced is False
    assert result.model_used == "fallback"
    assert "not configured" in result.degraded_reason


@pytest.mark.asyncio
async def test_analyze_degrades_on_timeout(knowledge_base, prompt_builder, fake_llm):
    """
    Test that a stalled model is abandoned after the generation timeout.
    """
    llm = fake_llm(ROLES_RESPONSE, delay=1.0)
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm, generation_timeout=0.01)

    result = await pipeline.analyze(RESUME, "data-analyst")

    assert result.rag_enhanced is False
    assert "timed out" in result.degraded_reason


@pytest.mark.asyncio
async def test_analyze_degrades_on_unparseable_output(knowledge_base, prompt_builder, fake_llm):
    """
    Test that prose output falls back to keyword analysis.
    """
    llm = fake_llm("I am unable to produce JSON today.")
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    result = await pipeline.analyze(RESUME, "data-analyst")

    assert result.rag_enhanced is False
    assert result.skills_present == ["Python", "SQL"]


@pytest.mark.asyncio
async def test_analyze_repairs_fenced_flat_output(knowledge_base, prompt_builder, fake_llm):
    """
    Test that fenced flat output is repaired and scored by coverage.
    """
    llm = fake_llm('```json\n{"skills_present": ["Python"], "skills_missing": ["Tableau"]}\n```')
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    result = await pipeline.analyze(RESUME, "data-analyst")

    assert result.rag_enhanced is True
    assert result.skills_present == ["Python", "SQL"]
    assert result.skills_missing == ["Tableau"]
    assert result.match_score == 40


@pytest.mark.asyncio
async def test_misconfigured_model_fails_the_request(knowledge_base, prompt_builder, fake_llm):
    """
    Test that a configuration error is a hard failure tagged with its stage.
    """
    llm = fake_llm(error=ConfigurationError("LLM provider rejected the request"))
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    with pytest.raises(AnalysisFailedError) as excinfo:
        await pipeline.analyze(RESUME, "data-analyst")

    assert excinfo.value.stage == "generation"


@pytest.mark.asyncio
async def test_collect_passages_ranks_and_caps(knowledge_base, prompt_builder):
    """
    Test collection order, identifiers, metadata and the passage cap.
    """
    passages = await _make_pipeline(knowledge_base, prompt_builder).collect_passages("data-analyst")

    assert [p.doc_id for p in passages] == [f"src{i}" for i in range(1, 11)]
    relevances = [p.metadata["relevance"] for p in passages]
    assert relevances == sorted(relevances, reverse=True)
    assert passages[0].metadata == {
        "source": "industry_standards",
        "relevance": 0.9,
        "role": "data-analyst",
    }
    assert len({p.text for p in passages}) == len(passages)


@pytest.mark.asyncio
async def test_collect_passages_for_unknown_role(knowledge_base, prompt_builder):
    """
    Test that an unknown role collects no passages and still analyses.
    """
    pipeline = _make_pipeline(knowledge_base, prompt_builder)

    assert await pipeline.collect_passages("astronaut") == []

    result = await pipeline.analyze(RESUME, "astronaut")

    assert result.retrieved_passages == []
    assert result.match_score == 0


@pytest.mark.asyncio
async def test_collect_passages_uses_ready_standards_index(knowledge_base, prompt_builder):
    """
    Test that a ready standards index contributes passages for the role only.
    """
    provider = EmbeddingProvider(dimension=128)
    standards = StandardsIndex(VectorIndex(dimension=128))
    corpus = knowledge_base.standards_corpus()
    for item, vector in zip(corpus, await provider.embed_many([text for _, text in corpus])):
        standards.index.add(item, vector)
    standards.mark_ready()

    pipeline = _make_pipeline(knowledge_base, prompt_builder, standards_index=standards, max_passages=50)
    passages = await pipeline.collect_passages("ux-designer", "Figma prototyping and usability testing")

    assert passages
    assert all(p.metadata["role"] == "ux-designer" for p in passages if p.metadata["source"] == "standards_index")
    assert all(0.5 <= p.metadata["relevance"] <= 0.99 for p in passages)


def test_aggregate_score_precedence(knowledge_base, prompt_builder):
    """
    Test that confidence beats the flat score, which beats coverage, and that
    scores are clamped.
    """
    pipeline = _make_pipeline(knowledge_base, prompt_builder)

    two_roles = parse_generation_payload('{"roles": [{"confidence": 80}, {"confidence": 61}], "match_score": 5}')
    assert pipeline.aggregate(two_roles, RESUME, "data-analyst")[2] == 70

    flat = parse_generation_payload('{"skills_present": ["Go"], "match_score": 150}')
    present, missing, score = pipeline.aggregate(flat, RESUME, "data-analyst")
    assert present == ["Go", "Python", "SQL"]
    assert missing == ["Tableau", "Statistics", "Machine Learning"]
    assert score == 100

    assert pipeline.aggregate(None, RESUME, "data-analyst")[2] == 40


@pytest.mark.asyncio
async def test_analyze_sections_with_generation(knowledge_base, prompt_builder, fake_llm):
    """
    Test per-chunk analysis and report aggregation.
    """
    llm = fake_llm(SECTION_RESPONSE)
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm, max_chunk_chars=60)

    report = await pipeline.analyze_sections(LONG_RESUME, "data-analyst")

    assert len(report.sections) > 1
    assert len(llm.prompts) == len(report.sections)
    assert all(not s.degraded and s.relevance_score == 70 for s in report.sections)
    assert report.match_score == 70
    assert report.skills_present == ["SQL"]
    assert report.recommendations == ["Add a dashboard project"]
    assert report.rag_enhanced is True
    assert report.model_used == "fake-model"


@pytest.mark.asyncio
async def test_analyze_sections_falls_back_per_chunk(knowledge_base, prompt_builder, fake_llm):
    """
    Test that failed chunks fall back to keyword skills with relevance 60.
    """
    llm = fake_llm(error=RuntimeError("connection reset"))
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm, max_chunk_chars=60)

    report = await pipeline.analyze_sections(LONG_RESUME, "data-analyst")

    assert report.sections
    assert all(s.degraded and s.relevance_score == 60 for s in report.sections)
    assert report.match_score == 60
    assert {"SQL", "Python"} <= set(report.skills_present)
    assert report.rag_enhanced is False
    assert report.model_used == "fallback"
    assert report.degraded_reason


@pytest.mark.asyncio
async def test_analyze_sections_empty_document(knowledge_base, prompt_builder, fake_llm):
    """
    Test that an empty document produces an empty, zero-score report.
    """
    llm = fake_llm(SECTION_RESPONSE)
    report = await _make_pipeline(knowledge_base, prompt_builder, llm).analyze_sections("\n\n", "data-analyst")

    assert report.sections == []
    assert report.match_score == 0
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_analyze_sections_misconfigured_model_fails(knowledge_base, prompt_builder, fake_llm):
    """
    Test that a configuration error in any chunk fails the whole report.
    """
    llm = fake_llm(error=ConfigurationError("bad key"))
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm)

    with pytest.raises(AnalysisFailedError):
        await pipeline.analyze_sections(LONG_RESUME, "data-analyst")


@pytest.mark.asyncio
async def test_analyze_sections_cancels_remaining_chunks_on_failure(knowledge_base, prompt_builder, fake_llm):
    """
    Test that a misconfigured model cancels the analyses of the other chunks.
    """

    class FirstCallRejected(fake_llm):
        def __init__(self):
            super().__init__(SECTION_RESPONSE)
            self.cancelled = 0
            self.finished = 0

        async def _acomplete(self, prompt, stop, **kwargs):
            self.prompts.append(prompt)
            if len(self.prompts) == 1:
                raise ConfigurationError("bad key")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
            self.finished += 1
            return self.response

    llm = FirstCallRejected()
    pipeline = _make_pipeline(knowledge_base, prompt_builder, llm, max_chunk_chars=60)

    with pytest.raises(AnalysisFailedError):
        await pipeline.analyze_sections(LONG_RESUME, "data-analyst")

    assert llm.finished == 0
    assert llm.cancelled == len(llm.prompts) - 1
