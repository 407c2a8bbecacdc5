"""
Retrieval layer of the career RAG pipeline.

This package covers everything needed to turn text into searchable vectors
and to fetch the most relevant passages for a query.

Submodules
----------
embedder
    Embedding model wrappers, the hash fallback and the embedding provider.
text_splitter
    Resume chunking into labelled, size-bounded sections.
vector_store
    Build-once cosine similarity index with exact and Qdrant backends.
retriever
    Vector and hybrid (vector + lexical) retrievers.
retriever_factory
    Registry-based retriever construction.
reranker
    LLM relevance re-ranking with a pass-through fallback.
types
    Retriever and re-ranker protocols.
"""
