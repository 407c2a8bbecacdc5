"""career_rag.retrieval.embedder

Text-to-vector conversion for resume and standards passages.

Two kinds of backend exist: model backends reached through LlamaIndex
(a local SentenceTransformer or an OpenAI-compatible ``/embeddings`` endpoint)
and a feature-hashing embedder that runs in process. :class:`EmbeddingProvider`
puts the hash embedder behind whichever model backend is configured, so
retrieval keeps working with an unreachable or misbehaving model.

Classes
-------
BaseEmbedder
    Single-string embedding contract shared by every backend.
HashEmbedder
    Bag-of-tokens feature hashing, no model required.
HuggingFaceEmbedder
    Local SentenceTransformer model (``huggingface`` extra).
OpenAILikeEmbedder
    Remote OpenAI-compatible embedding endpoint.
EmbeddingProvider
    Primary embedder with timeout and hash fallback.

Functions
---------
hash_embedding
    Compute the hash fallback embedding of a string.
create_embedder
    Backend selected by the ``type`` of an embedder config section.
create_embedding_provider
    Create an embedding provider from a configuration mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional
import asyncio
import logging
import math

from langchain_core.callbacks import BaseCallbackHandler
from llama_index.core.base.embeddings.base import BaseEmbedding as LlamaIndexBaseEmbedding

logger = logging.getLogger("career_rag.retrieval.embedder")

DEFAULT_DIMENSION = 128
DEFAULT_EMBED_TIMEOUT = 10.0

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        flag = value.strip().lower()
        if flag in _TRUE or flag in _FALSE:
            return flag in _TRUE
    return bool(value)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _token_hash(token: str) -> int:
    """Signed 32-bit polynomial rolling hash over UTF-16 code units."""
    h = 0
    data = token.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = _to_int32(h * 31 + code_unit)
    return h


def hash_embedding(text: str, dimension: int = DEFAULT_DIMENSION) -> list[float]:
    """Compute the deterministic hash embedding of ``text``.

    The text is case-folded and split on whitespace. Each token increments the
    bucket ``abs(hash(token)) % dimension`` and the resulting count vector is
    L2-normalised.

    Parameters
    ----------
    text : str
        Input text.
    dimension : int, optional
        Output dimensionality. Defaults to 128.

    Returns
    -------
    list[float]
        A unit-norm vector, or the zero vector when ``text`` has no tokens.

    Raises
    ------
    ValueError
        If ``dimension`` is not positive.
    """
    if dimension <= 0:
        raise ValueError(f"dimension must be positive, got {dimension}")

    vector = [0.0] * dimension
    for token in (text or "").lower().split():
        vector[abs(_token_hash(token)) % dimension] += 1.0

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0.0:
        return vector
    return [v / norm for v in vector]


class BaseEmbedder(ABC):
    """One string in, one vector out.

    Subclasses only need :meth:`embed_query`; the async variant defaults to
    running it on the loop's executor so a blocking model call does not stall
    the analysis request.
    """

    @abstractmethod
    def embed_query(self, query: str) -> list[float]:
        pass

    async def aembed_query(self, query: str) -> list[float]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.embed_query, query)

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "BaseEmbedder":
        """Build the backend from its ``embedder`` config section.

        Raises
        ------
        KeyError
            If a key the backend cannot default (such as ``model_name``) is absent.
        """
        pass


class HashEmbedder(BaseEmbedder):
    """Feature-hashing backend.

    Parameters
    ----------
    dimension : int, optional
        Number of hash buckets. Defaults to 128.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension

    def embed_query(self, query: str) -> list[float]:
        return hash_embedding(query, self.dimension)

    async def aembed_query(self, query: str) -> list[float]:
        return hash_embedding(query, self.dimension)

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "HashEmbedder":
        return cls(dimension=int(config.get("dimension", DEFAULT_DIMENSION)))


class LlamaIndexEmbedder(BaseEmbedder):
    """Backend delegating to a LlamaIndex ``BaseEmbedding`` held in ``embedder``."""

    embedder: LlamaIndexBaseEmbedding

    def embed_query(self, query: str) -> list[float]:
        return self.embedder.get_text_embedding(query)

    async def aembed_query(self, query: str) -> list[float]:
        return await self.embedder.aget_text_embedding(query)


class HuggingFaceEmbedder(LlamaIndexEmbedder):
    """Local SentenceTransformer through LlamaIndex's ``HuggingFaceEmbedding``.

    The import is deferred because the package ships with the optional
    ``huggingface`` extra only.

    Parameters
    ----------
    model_name : str
        Hub id or local path, e.g. ``"BAAI/bge-small-en-v1.5"``.
    device : str
        Torch device to load the model on. Defaults to ``"cpu"``.
    trust_remote_code : bool, optional
        Allow model repositories that ship their own modelling code.
    callback_manager : BaseCallbackHandler, optional
        Passed to LlamaIndex.
    model_kwargs : dict[str, Any] or None, optional
        Passed to the SentenceTransformer constructor.
    """

    def __init__(
            self,
            model_name: str,
            *,
            device: str = "cpu",
            trust_remote_code: bool = False,
            callback_manager: BaseCallbackHandler = None,
            model_kwargs: dict[str, Any] = None,
        ):
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding

        self.embedder = HuggingFaceEmbedding(
            model_name=model_name,
            device=device,
            trust_remote_code=trust_remote_code,
            model_kwargs=model_kwargs or {},
            callback_manager=callback_manager,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "HuggingFaceEmbedder":
        return cls(
            config["model_name"],
            device=config.get("device", "cpu"),
            trust_remote_code=_as_bool(config.get("trust_remote_code"), False),
            model_kwargs=config.get("model_kwargs"),
            callback_manager=callback_manager,
        )


class OpenAILikeEmbedder(LlamaIndexEmbedder):
    """Remote embedding endpoint speaking the OpenAI ``/embeddings`` protocol.

    Works with OpenAI itself, Gemini's compatibility layer or a self-hosted
    server such as TEI or vLLM.

    Parameters
    ----------
    model_name : str
        Embedding model served at ``api_base``.
    api_base : str
        Endpoint root, e.g. ``"http://localhost:8080/v1"``.
    api_key : str, optional
        Bearer token, if the endpoint needs one.
    callback_manager : BaseCallbackHandler, optional
        Passed to LlamaIndex.
    model_kwargs : dict[str, Any] or None, optional
        Extra request body fields.
    timeout, max_retries, embed_batch_size, reuse_client
        HTTP client settings forwarded to ``OpenAILikeEmbedding``.
    """

    def __init__(
            self,
            model_name: str,
            *,
            api_base: str,
            api_key: str = None,
            callback_manager: BaseCallbackHandler = None,
            model_kwargs: dict[str, Any] = None,
            timeout: float = 60.0,
            max_retries: int = 2,
            embed_batch_size: int = 10,
            reuse_client: bool = True,
        ):
        from llama_index.embeddings.openai_like import OpenAILikeEmbedding

        self.embedder = OpenAILikeEmbedding(
            model_name=model_name,
            api_base=api_base,
            api_key=api_key,
            additional_kwargs=model_kwargs or {},
            timeout=timeout,
            max_retries=max_retries,
            embed_batch_size=embed_batch_size,
            reuse_client=reuse_client,
            callback_manager=callback_manager,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "OpenAILikeEmbedder":
        """Build from config; ``model_name`` and ``api_base`` are mandatory.

        Raises
        ------
        KeyError
            If ``model_name`` or ``api_base`` is absent.
        """
        return cls(
            config["model_name"],
            api_base=config["api_base"],
            api_key=config.get("api_key"),
            model_kwargs=config.get("model_kwargs"),
            timeout=float(config.get("request_timeout", 60.0)),
            max_retries=int(config.get("max_retries", 2)),
            embed_batch_size=int(config.get("embed_batch_size", 10)),
            reuse_client=_as_bool(config.get("reuse_client"), True),
            callback_manager=callback_manager,
        )


class EmbeddingProvider:
    """Embedding entry point used by the retrieval layer.

    Wraps an optional primary embedder. Any primary failure (exception,
    timeout, empty vector or a vector of the wrong length) is logged and
    replaced by :func:`hash_embedding`, so :meth:`embed` never raises and
    every returned vector has exactly ``dimension`` components.

    Parameters
    ----------
    primary : BaseEmbedder or None, optional
        Primary backend. ``None`` means the hash fallback is always used.
    dimension : int, optional
        Dimensionality of every returned vector. Defaults to 128.
    timeout : float, optional
        Seconds allowed for one primary call. Defaults to 10.
    """

    def __init__(
            self,
            primary: Optional[BaseEmbedder] = None,
            *,
            dimension: int = DEFAULT_DIMENSION,
            timeout: float = DEFAULT_EMBED_TIMEOUT,
        ):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.primary = primary
        self.dimension = dimension
        self.timeout = timeout

    @property
    def uses_fallback_only(self) -> bool:
        return self.primary is None

    def fallback(self, text: str) -> list[float]:
        return hash_embedding(text, self.dimension)

    async def embed(self, text: str) -> list[float]:
        """Embed ``text`` with the primary backend, falling back to hashing.

        Parameters
        ----------
        text : str
            Text to embed.

        Returns
        -------
        list[float]
            A vector with exactly ``self.dimension`` components.
        """
        if self.primary is None:
            return self.fallback(text)

        try:
            vector = await asyncio.wait_for(self.primary.aembed_query(text), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Primary embedder timed out after %.1fs; using hash embedding.", self.timeout)
            return self.fallback(text)
        except Exception as exc:
            logger.warning("Primary embedder failed (%s); using hash embedding.", exc)
            return self.fallback(text)

        if not vector:
            logger.warning("Primary embedder returned an empty vector; using hash embedding.")
            return self.fallback(text)
        if len(vector) != self.dimension:
            logger.warning(
                "Primary embedder returned %d dimensions, expected %d; using hash embedding.",
                len(vector),
                self.dimension,
            )
            return self.fallback(text)

        return [float(v) for v in vector]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` concurrently, preserving input order."""
        if not texts:
            return []
        return list(await asyncio.gather(*(self.embed(t) for t in texts)))


# ----------------- Factory helpers -----------------

def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_embedder_kind(kind: str) -> str:
    """Normalise an embedder kind string to a stable registry key.

    Converts CamelCase to snake_case, replaces whitespace and hyphens with
    underscores and collapses ``OpenAILike`` spellings to ``openai_like``.
    """
    k = kind.strip()
    if not k:
        return ""

    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out).replace("-", "_").replace(" ", "_")
    while "__" in k2:
        k2 = k2.replace("__", "_")
    k2 = k2.lower()

    for alias in ("openailike", "open_ailike", "open_ai_like"):
        k2 = k2.replace(alias, "openai_like")
    return k2


_EMBEDDER_REGISTRY = {
    "hash": HashEmbedder,
    "huggingface": HuggingFaceEmbedder,
    "hugging_face": HuggingFaceEmbedder,
    "hf": HuggingFaceEmbedder,
    "openai_like": OpenAILikeEmbedder,
    "openai": OpenAILikeEmbedder,
}


def create_embedder(
    config: Mapping[str, Any],
    callback_manager: Optional[BaseCallbackHandler] = None,
) -> BaseEmbedder:
    """Create an embedder implementation from a configuration mapping.

    The concrete implementation is selected by a discriminator field in the
    configuration (one of: ``kind``, ``type``, ``provider``, ``backend``, or
    ``impl``). Without a discriminator the :class:`HashEmbedder` is used.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unsupported implementation.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_embedder expected a mapping/dict, got {type(config)}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_embedder_kind(kind_raw) or "hash"

    cls = _EMBEDDER_REGISTRY.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(_EMBEDDER_REGISTRY.keys())}."
        )
    return cls.from_config_dict(dict(config), callback_manager=callback_manager)


def create_embedding_provider(
    config: Optional[Mapping[str, Any]] = None,
    callback_manager: Optional[BaseCallbackHandler] = None,
) -> EmbeddingProvider:
    """Create an :class:`EmbeddingProvider` from the ``embedder`` config section.

    ``kind: hash`` (the default) yields a provider with no primary backend.
    """
    config = dict(config or {})
    dimension = int(config.get("dimension", DEFAULT_DIMENSION))
    timeout = float(config.get("timeout", DEFAULT_EMBED_TIMEOUT))

    embedder = create_embedder(config, callback_manager=callback_manager)
    primary = None if isinstance(embedder, HashEmbedder) else embedder
    return EmbeddingProvider(primary, dimension=dimension, timeout=timeout)


__all__ = [
    "BaseEmbedder",
    "HashEmbedder",
    "HuggingFaceEmbedder",
    "OpenAILikeEmbedder",
    "EmbeddingProvider",
    "hash_embedding",
    "create_embedder",
    "create_embedding_provider",
]
