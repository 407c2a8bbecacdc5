import asyncio

import pytest

from career_rag.generation.llm_interface import BaseLLM
from career_rag.generation.prompt_builder import PromptBuilder
from career_rag.knowledge import load_knowledge_base
from career_rag.retrieval.embedder import EmbeddingProvider

PACKAGED_KNOWLEDGE_BASE = "pkg:career_rag.knowledge:default_knowledge_base.yaml"
PACKAGED_PROMPTS = "pkg:career_rag.generation:prompts/default.json"


class FakeLLM(BaseLLM):
    """
    In-process stand-in for a generation model.

    ``response`` may be a string or a callable taking the rendered prompt.
    When ``error`` is set it is raised instead of returning a response.
    """

    def __init__(self, response=None, *, error=None, delay=0.0, model_name="fake-model"):
        self.model_name = model_name
        self.api_base = None
        self.default_stop_list = None
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts = []
        self.calls = []

    async def _acomplete(self, prompt, stop, **kwargs):
        self.prompts.append(prompt)
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return self.response(prompt)
        return self.response

@pytest.fixture
def fake_llm():
    """
    Return the :class:`FakeLLM` class so tests can build configured instances.
    """
    return FakeLLM


@pytest.fixture
def knowledge_base():
    return load_knowledge_base(PACKAGED_KNOWLEDGE_BASE)


@pytest.fixture
def prompt_builder():
    return PromptBuilder.from_sources([PACKAGED_PROMPTS])


@pytest.fixture
def hash_provider():
    return EmbeddingProvider(dimension=128)
