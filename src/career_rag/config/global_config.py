"""career_rag.config.global_config

YAML configuration for the analysis service.

The file is a mapping of optional sections (``generator_llm``, ``embedder``,
``reranker``, ``retriever``, ``vector_index``, ``chunking``, ``generation``,
``knowledge_base`` and ``prompts``). An empty file is valid and yields a
fully degraded service: hash embeddings, no reranking and keyword-only
analysis. ``${VAR}`` references anywhere in string values are replaced from
the environment when the file is loaded, which is how API keys get in.

Classes
-------
GlobalConfig
    Parsed configuration with one checked accessor per section.
"""

import os
import yaml
from pathlib import Path
from functools import cached_property
from typing import Any

DEFAULT_KNOWLEDGE_BASE = "pkg:career_rag.knowledge:default_knowledge_base.yaml"
DEFAULT_PROMPTS = "pkg:career_rag.generation:prompts/default.json"


def _expand_env(obj):
    """Apply :func:`os.path.expandvars` to every string nested in ``obj``.

    Unset variables are left as written, so a missing ``${GEMINI_API_KEY}``
    reaches the provider verbatim and is rejected there as a configuration
    error.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


def _optional_section(raw: dict, name: str) -> dict:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise TypeError(f"'{name}' must be a mapping, got {type(section)}.")
    return section


class GlobalConfig:
    """Parsed service configuration.

    Sections are checked on first access, not at construction, so a bad
    ``chunking`` block only fails the component that reads it.

    Parameters
    ----------
    raw : dict
        Parsed YAML mapping.
    config_path : Path or None, optional
        Location of the file ``raw`` came from. Relative ``prompts`` and
        ``knowledge_base`` paths resolve against its directory.
    """

    def __init__(
            self,
            raw: dict | None = None,
            config_path: Path | None = None,
        ):
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise TypeError(f"Configuration root must be a mapping, got {type(raw)}.")
        self.raw = raw
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Read ``path`` and expand environment references."""
        config_path = Path(path).expanduser().resolve()
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(_expand_env(data), config_path=config_path)

    @cached_property
    def base_dir(self) -> Path | None:
        """Directory containing the loaded config file, if known."""
        if self.config_path is None:
            return None
        return Path(self.config_path).expanduser().resolve().parent

    @cached_property
    def generator_llm(self) -> dict | None:
        """Return the generator LLM configuration section.

        Returns
        -------
        dict or None
            The ``generator_llm`` section, or ``None`` when generation is not
            configured (the pipeline then runs in fallback mode).
        """
        section = self.raw.get("generator_llm")
        if section is None:
            return None
        if not isinstance(section, dict):
            raise TypeError(f"'generator_llm' must be a mapping, got {type(section)}.")
        return section

    @cached_property
    def embedder(self) -> dict:
        """Return the embedder configuration section (defaults to the hash embedder)."""
        section = _optional_section(self.raw, "embedder")
        dimension = section.get("dimension", 128)
        if not isinstance(dimension, int) or dimension <= 0:
            raise ValueError(f"'embedder.dimension' must be a positive integer, got {dimension!r}.")
        return section

    @cached_property
    def reranker(self) -> dict:
        """Return the reranker configuration section."""
        return _optional_section(self.raw, "reranker")

    @cached_property
    def retriever(self) -> dict:
        """Return the retriever configuration section.

        Raises
        ------
        ValueError
            If ``top_k`` is not a positive integer or a weight is negative.
        """
        section = _optional_section(self.raw, "retriever")
        top_k = section.get("top_k", 6)
        if not isinstance(top_k, int) or top_k <= 0:
            raise ValueError(f"'retriever.top_k' must be a positive integer, got {top_k!r}.")
        for key in ("vector_weight", "lexical_weight"):
            if key in section and float(section[key]) < 0:
                raise ValueError(f"'retriever.{key}' must be non-negative.")
        return section

    @cached_property
    def vector_index(self) -> dict:
        """Return the vector index configuration section."""
        return _optional_section(self.raw, "vector_index")

    @cached_property
    def chunking(self) -> dict:
        """Return the chunking configuration section.

        Raises
        ------
        ValueError
            If ``max_chunk_chars`` is not a positive integer.
        """
        section = _optional_section(self.raw, "chunking")
        max_chars = section.get("max_chunk_chars", 500)
        if not isinstance(max_chars, int) or max_chars <= 0:
            raise ValueError(
                f"'chunking.max_chunk_chars' must be a positive integer, got {max_chars!r}."
            )
        return section

    @cached_property
    def generation(self) -> dict:
        """Return generation call settings (timeout, temperature, max tokens)."""
        return _optional_section(self.raw, "generation")

    @cached_property
    def knowledge_base(self) -> str:
        """Return the knowledge base source.

        Returns
        -------
        str
            A ``pkg:<package>:<resource>`` reference or filesystem path. Defaults to
            the packaged knowledge base.
        """
        source = self.raw.get("knowledge_base", DEFAULT_KNOWLEDGE_BASE)
        if not isinstance(source, str) or not source.strip():
            raise TypeError("'knowledge_base' must be a non-empty string source.")
        return source

    @cached_property
    def prompts(self) -> list[str]:
        """Return prompt template sources.

        Returns
        -------
        list[str]
            Prompt sources; a single configured string is wrapped in a list.
            Defaults to the packaged prompt templates.
        """
        prompts: Any = self.raw.get("prompts", DEFAULT_PROMPTS)
        if isinstance(prompts, str):
            return [prompts]
        if isinstance(prompts, (list, tuple)) and all(isinstance(p, str) for p in prompts):
            return list(prompts)
        raise TypeError(f"'prompts' must be a str or list[str], got {type(prompts)!r}")
