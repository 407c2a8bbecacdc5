"""career_rag.pipelines

Pipeline orchestration components for the career RAG system.

This package contains the analysis pipeline that coordinates passage
collection, retrieval, re-ranking, prompt construction and generation, and
the result models it returns.

Modules
-------
rag_pipeline
    End-to-end resume analysis pipeline.
results
    Pydantic result models.
"""
