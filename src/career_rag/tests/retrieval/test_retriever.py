import pytest

from career_rag.common.schemas import Document, RetrievalSource, SearchHit
from career_rag.retrieval import retriever_factory
from career_rag.retrieval.retriever import (
    HybridRetriever,
    VectorRetriever,
    lexical_search,
    merge_candidates,
)


def _corpus() -> list[Document]:
    return [
        Document("SQL proficiency for data querying and analysis", doc_id="src1"),
        Document("Tableau or Power BI experience for dashboard creation", doc_id="src2"),
        Document("Strong analytical and problem-solving skills", doc_id="src3"),
        Document("Python programming for statistical analysis and automation", doc_id="src4"),
    ]


def test_merge_scores_candidate_found_by_both_lists():
    """
    Test the weighted merge: 0.8 * 0.7 + 1.0 * 0.3 == 0.86, marked hybrid.
    """
    doc = Document("SQL expertise", doc_id="d1")

    merged = merge_candidates([SearchHit(doc, 0.8)], [SearchHit(doc, 1.0)])

    assert len(merged) == 1
    assert merged[0].score == pytest.approx(0.86)
    assert merged[0].source is RetrievalSource.HYBRID


def test_merge_keeps_single_list_sources_and_sorts():
    """
    Test that candidates from one list keep their provenance and the merged
    list is sorted by descending score.
    """
    vec_only = Document("vector only", doc_id="v")
    lex_only = Document("lexical only", doc_id="l")

    merged = merge_candidates([SearchHit(vec_only, 0.5)], [SearchHit(lex_only, 1.0)])

    assert [c.doc_id for c in merged] == ["v", "l"]
    assert merged[0].score == pytest.approx(0.35)
    assert merged[0].source is RetrievalSource.VECTOR
    assert merged[1].score == pytest.approx(0.3)
    assert merged[1].source is RetrievalSource.LEXICAL


def test_merge_copies_document_metadata():
    """
    Test that candidate metadata is a copy of the document metadata.
    """
    doc = Document("text", doc_id="d", metadata={"source": "job_board"})

    merged = merge_candidates([SearchHit(doc, 1.0)], [])
    merged[0].metadata["source"] = "changed"

    assert doc.metadata == {"source": "job_board"}


def test_lexical_search_normalises_bm25_scores():
    """
    Test that the best BM25 hit scores 1.0, weaker hits fall below it and
    passages sharing no term are dropped.
    """
    hits = lexical_search("SQL analysis", _corpus(), 10)

    assert [h.item.doc_id for h in hits] == ["src1", "src4"]
    assert hits[0].score == pytest.approx(1.0)
    assert 0.0 < hits[1].score < 1.0


def test_lexical_search_respects_k():
    """
    Test that at most ``k`` hits come back, best first.
    """
    hits = lexical_search("SQL analysis", _corpus(), 1)

    assert [h.item.doc_id for h in hits] == ["src1"]


def test_lexical_search_ties_keep_corpus_order():
    """
    Test that passages with identical text keep their corpus order.
    """
    corpus = [
        Document("Tableau dashboards", doc_id="a"),
        Document("Python scripting", doc_id="b"),
        Document("Python scripting", doc_id="c"),
    ]

    hits = lexical_search("python", corpus, 3)

    assert [h.item.doc_id for h in hits] == ["b", "c"]
    assert hits[0].score == hits[1].score == pytest.approx(1.0)


def test_lexical_search_with_stopword_query_returns_nothing():
    """
    Test that stopword-only queries, an empty corpus and non-positive k
    match nothing.
    """
    assert lexical_search("and the of", _corpus(), 5) == []
    assert lexical_search("sql", [], 5) == []
    assert lexical_search("sql", _corpus(), 0) == []


@pytest.mark.asyncio
async def test_vector_retriever_returns_top_k_by_cosine(hash_provider):
    """
    Test that the vector retriever ranks an exact-text match first.
    """
    retriever = VectorRetriever(embedder=hash_provider)
    corpus = _corpus()

    results = await retriever.retrieve(corpus[1].text, corpus, 2)

    assert len(results) == 2
    assert results[0].doc_id == "src2"
    assert results[0].score == pytest.approx(1.0)
    assert all(c.source is RetrievalSource.VECTOR for c in results)


@pytest.mark.asyncio
async def test_vector_retriever_empty_corpus(hash_provider):
    """
    Test that an empty corpus or non-positive k yields no candidates.
    """
    retriever = VectorRetriever(embedder=hash_provider)

    assert await retriever.retrieve("python", [], 3) == []
    assert await retriever.retrieve("python", _corpus(), 0) == []


@pytest.mark.asyncio
async def test_hybrid_retriever_uses_prebuilt_index(hash_provider):
    """
    Test that the hybrid retriever merges both lists over a prebuilt index
    and does not truncate the merged list to k.
    """
    retriever = HybridRetriever(embedder=hash_provider)
    corpus = _corpus()
    index = await retriever.build_index(corpus)

    results = await retriever.retrieve("SQL analysis", corpus, 1, index=index)

    assert index.is_built
    assert len(index) == 4
    assert len(results) >= 2
    by_id = {c.doc_id: c for c in results}
    assert by_id["src1"].source is RetrievalSource.HYBRID
    assert results == sorted(results, key=lambda c: c.score, reverse=True)


@pytest.mark.asyncio
async def test_hybrid_weights_are_configurable(hash_provider):
    """
    Test that zero vector weight leaves only lexical contributions.
    """
    retriever = HybridRetriever(embedder=hash_provider, vector_weight=0.0, lexical_weight=1.0)

    results = await retriever.retrieve("SQL analysis", _corpus(), 2)

    assert results[0].doc_id == "src1"
    assert results[0].score == pytest.approx(1.0)


def test_factory_builds_registered_kinds(hash_provider):
    """
    Test construction by kind and from the config section.
    """
    assert isinstance(retriever_factory.create(kind="vector", embedder=hash_provider), VectorRetriever)

    hybrid = retriever_factory.create_from_config(
        {"kind": "hybrid", "vector_weight": 0.6, "lexical_weight": 0.4},
        embedder=hash_provider,
    )
    assert isinstance(hybrid, HybridRetriever)
    assert hybrid.vector_weight == 0.6
    assert hybrid.lexical_weight == 0.4

    assert isinstance(retriever_factory.create_from_config(None, embedder=hash_provider), HybridRetriever)


def test_factory_rejects_unknown_kind(hash_provider):
    """
    Test that an unregistered kind raises ``ValueError``.
    """
    with pytest.raises(ValueError):
        retriever_factory.create(kind="bm25", embedder=hash_provider)
