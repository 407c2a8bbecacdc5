"""
Generation layer of the career RAG pipeline.

Submodules
----------
llm_interface
    LangChain-backed wrappers around OpenAI-compatible LLM endpoints.
prompt_builder
    Jinja2 prompt templates loaded from JSON sources.
response_parser
    Defensive JSON repair and pydantic models for model output.
"""
