import asyncio
import math

import pytest

from career_rag.retrieval.embedder import (
    BaseEmbedder,
    EmbeddingProvider,
    HashEmbedder,
    _normalize_embedder_kind,
    _token_hash,
    create_embedder,
    create_embedding_provider,
    hash_embedding,
)


class _StaticEmbedder(BaseEmbedder):
    """
    Primary embedder returning a fixed vector, raising, or stalling.
    """

    def __init__(self, vector=None, error=None, delay=0.0):
        self.vector = vector
        self.error = error
        self.delay = delay

    def embed_query(self, query):
        return self.vector

    async def aembed_query(self, query):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.vector

    @classmethod
    def from_config_dict(cls, config, callback_manager=None):
        return cls(vector=config.get("vector"))


def _norm(vector):
    return math.sqrt(sum(v * v for v in vector))


def test_token_hash_matches_polynomial_string_hash():
    """
    Test that ``_token_hash`` reproduces the 31-based polynomial hash with
    signed 32-bit wraparound.
    """
    assert _token_hash("") == 0
    assert _token_hash("a") == 97
    assert _token_hash("ab") == 97 * 31 + 98
    assert _token_hash("hello") == 99162322
    assert _token_hash("polygenelubricants") == -(2 ** 31)


def test_hash_embedding_is_deterministic_and_unit_norm():
    """
    Test that the hash embedding of a non-empty text is stable across calls
    and has unit L2 norm.
    """
    first = hash_embedding("Python SQL data analyst")
    second = hash_embedding("Python SQL data analyst")

    assert first == second
    assert len(first) == 128
    assert _norm(first) == pytest.approx(1.0)


def test_hash_embedding_is_case_insensitive():
    """
    Test that case folding makes differently cased texts embed identically.
    """
    assert hash_embedding("Python SQL") == hash_embedding("python sql")


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_hash_embedding_of_empty_text_is_zero_vector(text):
    """
    Test that text without tokens embeds to the zero vector.
    """
    assert hash_embedding(text, dimension=16) == [0.0] * 16


def test_hash_embedding_counts_repeated_tokens():
    """
    Test that a repeated token lands in a single bucket, normalised to 1.
    """
    vector = hash_embedding("sql sql sql", dimension=32)

    assert sorted(vector)[-1] == pytest.approx(1.0)
    assert sum(1 for v in vector if v != 0.0) == 1


def test_hash_embedding_rejects_non_positive_dimension():
    """
    Test that a non-positive dimension raises ``ValueError``.
    """
    with pytest.raises(ValueError):
        hash_embedding("text", dimension=0)


@pytest.mark.asyncio
async def test_provider_without_primary_uses_hash_embedding():
    """
    Test that a provider with no primary backend returns the hash embedding.
    """
    provider = EmbeddingProvider(dimension=64)

    assert provider.uses_fallback_only
    assert await provider.embed("machine learning") == hash_embedding("machine learning", 64)


@pytest.mark.asyncio
async def test_provider_returns_primary_vector_when_valid():
    """
    Test that a valid primary vector is returned as floats.
    """
    provider = EmbeddingProvider(_StaticEmbedder(vector=[1, 0, 0, 0]), dimension=4)

    assert await provider.embed("anything") == [1.0, 0.0, 0.0, 0.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "primary",
    [
        _StaticEmbedder(error=RuntimeError("connection refused")),
        _StaticEmbedder(vector=[]),
        _StaticEmbedder(vector=[0.5, 0.5]),
    ],
    ids=["raises", "empty", "wrong-length"],
)
async def test_provider_falls_back_on_unusable_primary(primary):
    """
    Test that primary failures, empty vectors and wrong-length vectors are
    replaced by the hash embedding of the configured dimension.
    """
    provider = EmbeddingProvider(primary, dimension=8)

    vector = await provider.embed("python developer")

    assert vector == hash_embedding("python developer", 8)
    assert len(vector) == 8


@pytest.mark.asyncio
async def test_provider_falls_back_on_timeout():
    """
    Test that a stalled primary is abandoned after the timeout.
    """
    provider = EmbeddingProvider(_StaticEmbedder(vector=[1.0] * 8, delay=1.0), dimension=8, timeout=0.01)

    assert await provider.embed("slow text") == hash_embedding("slow text", 8)


@pytest.mark.asyncio
async def test_embed_many_preserves_order():
    """
    Test that ``embed_many`` returns one vector per text in input order.
    """
    provider = EmbeddingProvider(dimension=32)
    texts = ["sql", "python", "tableau"]

    vectors = await provider.embed_many(texts)

    assert vectors == [hash_embedding(t, 32) for t in texts]
    assert await provider.embed_many([]) == []


def test_normalize_embedder_kind_aliases():
    """
    Test that common spellings normalise to registry keys.
    """
    assert _normalize_embedder_kind("OpenAILike") == "openai_like"
    assert _normalize_embedder_kind("openai-like") == "openai_like"
    assert _normalize_embedder_kind("HuggingFace") == "hugging_face"
    assert _normalize_embedder_kind("") == ""


def test_create_embedder_defaults_to_hash():
    """
    Test that an empty config yields the hash embedder.
    """
    embedder = create_embedder({"dimension": 64})

    assert isinstance(embedder, HashEmbedder)
    assert embedder.dimension == 64


def test_create_embedder_rejects_unknown_kind():
    """
    Test that an unsupported kind raises ``ValueError``.
    """
    with pytest.raises(ValueError):
        create_embedder({"kind": "word2vec"})


def test_create_embedding_provider_from_empty_config():
    """
    Test that the default provider is hash-only with 128 dimensions.
    """
    provider = create_embedding_provider(None)

    assert provider.uses_fallback_only
    assert provider.dimension == 128
