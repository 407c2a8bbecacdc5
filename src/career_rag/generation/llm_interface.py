"""career_rag.generation.llm_interface

Generation backends for resume analysis and passage rating.

Both backends talk to an OpenAI-compatible HTTP API through LangChain, which
covers OpenAI, Gemini's ``/v1beta/openai`` layer and self-hosted servers such
as vLLM. The pipeline only ever calls :meth:`BaseLLM.acomplete`.

``acomplete`` separates two kinds of failure. A provider that rejects the key,
the permissions or the model name will keep rejecting it, so those responses
become :class:`~career_rag.common.errors.ConfigurationError` and fail the
request. Anything else (timeouts, rate limits, 5xx, dropped connections)
propagates as raised, and the pipeline answers with a keyword-only result.

Classes
-------
BaseLLM
    ``acomplete`` contract plus stop-list and error handling.
OpenAILikeLLM
    ``/completions`` backend (``langchain_openai.OpenAI``).
OpenAIChatLikeLLM
    ``/chat/completions`` backend (``langchain_openai.ChatOpenAI``).

Functions
---------
create_llm
    Backend selected by the ``type`` of the ``generator_llm`` config section.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional
import warnings

import openai
from langchain_core.callbacks import BaseCallbackHandler
from langchain_openai import ChatOpenAI, OpenAI

from career_rag.common.errors import ConfigurationError

_CONFIGURATION_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
)

# Gemini's compatibility layer answers 400 when these are present.
_GEMINI_UNSUPPORTED = ("frequency_penalty", "presence_penalty")


def _is_gemini_openai_compat(api_base: str | None) -> bool:
    base = (api_base or "").lower()
    return "generativelanguage.googleapis.com" in base and "/openai" in base


def _sanitize_openai_kwargs(
    api_base: str | None,
    kwargs: dict[str, Any],
    *,
    context: str,
) -> dict[str, Any]:
    """Copy of ``kwargs`` without parameters the endpoint at ``api_base`` rejects."""
    if not _is_gemini_openai_compat(api_base):
        return dict(kwargs)

    dropped = sorted(set(_GEMINI_UNSUPPORTED) & set(kwargs))
    if dropped:
        warnings.warn(f"Gemini endpoint does not accept {', '.join(dropped)}; ignored for {context}", UserWarning)
    return {k: v for k, v in kwargs.items() if k not in dropped}


def _require(config: Mapping[str, Any], key: str) -> str:
    value = config.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"generator_llm.{key} must be a non-empty string")
    return value.strip()


class BaseLLM(ABC):
    """Text generation backend.

    Subclasses set ``model_name``, ``api_base`` and ``default_stop_list`` and
    implement :meth:`_acomplete`.

    Attributes
    ----------
    model_name : str
        Reported as ``model_used`` on enhanced results.
    """

    model_name: str
    api_base: Optional[str]
    default_stop_list: Optional[list[str]]

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "BaseLLM":
        """Build from ``generator_llm``.

        ``model_name`` and ``api_base`` are required. ``api_key`` defaults to a
        placeholder for keyless local servers and ``model_kwargs`` go to the
        LangChain constructor.

        Raises
        ------
        ConfigurationError
            If ``model_name`` or ``api_base`` is missing.
        """
        return cls(
            model_name=_require(config, "model_name"),
            api_base=_require(config, "api_base"),
            api_key=config.get("api_key") or "fake",
            callback_manager=callback_manager,
            **dict(config.get("model_kwargs") or {}),
        )

    @abstractmethod
    async def _acomplete(self, prompt: str, stop: list[str] | None, **kwargs) -> Any:
        pass

    async def acomplete(self, prompt: str, **kwargs) -> Any:
        """Generate a completion for ``prompt``.

        Parameters
        ----------
        prompt : str
            Fully rendered prompt.
        **kwargs
            Per-call generation settings such as ``temperature`` and
            ``max_tokens``. ``stop`` (or ``stop_list``) replaces the stop list
            configured on the backend.

        Returns
        -------
        Any
            The generated text.

        Raises
        ------
        ConfigurationError
            When the provider refuses the key, the permissions or the model.
        """
        call_kwargs = _sanitize_openai_kwargs(self.api_base, kwargs, context="generation")
        stop = call_kwargs.pop("stop", None) or call_kwargs.pop("stop_list", None) or self.default_stop_list
        call_kwargs.pop("stop_list", None)

        try:
            return await self._acomplete(prompt, stop, **call_kwargs)
        except _CONFIGURATION_ERRORS as exc:
            raise ConfigurationError(
                f"LLM provider rejected the request: {exc}",
                {"model": self.model_name, "status": getattr(exc, "status_code", None)},
            ) from exc


def _split_model_kwargs(api_base: str, model_kwargs: dict[str, Any]) -> tuple[dict[str, Any], list[str] | None]:
    """Separate the stop list from constructor kwargs and drop an unusable ``top_p``."""
    init_kwargs = _sanitize_openai_kwargs(api_base, model_kwargs, context="model init")
    stop_list = init_kwargs.pop("stop_list", None)

    if "top_p" in init_kwargs:
        try:
            top_p = float(init_kwargs.pop("top_p"))
        except (TypeError, ValueError):
            top_p = None
        if top_p is not None and 0.0 < top_p < 1.0:
            init_kwargs["top_p"] = top_p

    return init_kwargs, stop_list


class OpenAILikeLLM(BaseLLM):
    """Backend for servers exposing the legacy ``/completions`` route.

    Parameters
    ----------
    model_name : str
        Model served at ``api_base``.
    api_base : str
        Endpoint root ending in ``/v1``.
    api_key : str, optional
        Bearer token. The ``"fake"`` default suits keyless local servers.
    callback_manager : BaseCallbackHandler, optional
        Attached to the LangChain client.
    **model_kwargs : Any
        Client settings like ``temperature`` or ``max_tokens``; ``stop_list``
        becomes the default stop list.
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: str = "fake",
        callback_manager: BaseCallbackHandler = None,
        **model_kwargs: Any,
    ):
        self.model_name = model_name
        self.api_base = api_base
        init_kwargs, self.default_stop_list = _split_model_kwargs(api_base, model_kwargs)

        self.llm = OpenAI(
            model_name=model_name,
            openai_api_base=api_base,
            openai_api_key=api_key,
            callbacks=[callback_manager] if callback_manager else None,
            **init_kwargs,
        )

    async def _acomplete(self, prompt: str, stop: list[str] | None, **kwargs) -> Any:
        result = await self.llm.agenerate([prompt], stop=stop, **kwargs)
        return result.generations[0][0].text


class OpenAIChatLikeLLM(BaseLLM):
    """Backend for ``/chat/completions``; the prompt goes out as one user turn.

    Takes the same arguments as :class:`OpenAILikeLLM`.
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: str = "fake",
        callback_manager: BaseCallbackHandler = None,
        **model_kwargs: Any,
    ):
        self.model_name = model_name
        self.api_base = api_base
        init_kwargs, self.default_stop_list = _split_model_kwargs(api_base, model_kwargs)

        self.llm = ChatOpenAI(
            model=model_name,
            base_url=api_base,
            api_key=api_key,
            callbacks=[callback_manager] if callback_manager else None,
            **init_kwargs,
        )

    async def _acomplete(self, prompt: str, stop: list[str] | None, **kwargs) -> Any:
        message = await self.llm.ainvoke(prompt, stop=stop, **kwargs)
        return getattr(message, "content", message)


# ----------------- Factory helpers -----------------

_KIND_KEYS = ("kind", "type", "provider", "backend", "impl")

_CHAT_SPELLINGS = (
    "open_aichat_like",
    "open_ai_chat_like",
    "openai_chat_like",
    "openai_chatlike",
    "chat_open_ai",
    "chat_openai",
    "chatopenai",
)


def _get_llm_kind(cfg: Mapping[str, Any]) -> str:
    for key in _KIND_KEYS:
        value = cfg.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _normalize_llm_kind(kind: str) -> str:
    """Registry key for a user-written kind.

    CamelCase is split on lower-to-upper boundaries, hyphens and spaces become
    underscores, and the OpenAI spellings are folded so that ``"OpenAILike"``
    gives ``"openai_like"`` and ``"ChatOpenAI"`` gives ``"openai_chat"``.
    """
    chars: list[str] = []
    for i, ch in enumerate(kind.strip()):
        if i and ch.isupper() and kind.strip()[i - 1].islower():
            chars.append("_")
        chars.append("_" if ch in "- " else ch)

    key = "_".join(part for part in "".join(chars).lower().split("_") if part)
    for spelling in ("openailike", "open_ailike", "open_ai_like"):
        key = key.replace(spelling, "openai_like")
    for spelling in _CHAT_SPELLINGS:
        key = key.replace(spelling, "openai_chat")
    return key


_LLM_REGISTRY: dict[str, type[BaseLLM]] = {
    "openai_like": OpenAILikeLLM,
    "openai": OpenAILikeLLM,
    "openai_chat": OpenAIChatLikeLLM,
    "gemini": OpenAIChatLikeLLM,
}


def create_llm(config: Mapping[str, Any], callback_manager: Optional[BaseCallbackHandler] = None) -> BaseLLM:
    """Build the generation backend named by ``config``.

    The backend is chosen by the first non-empty of ``kind``, ``type``,
    ``provider``, ``backend`` or ``impl``.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ConfigurationError
        If no backend is named, the name is unknown, or a required key is
        absent.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"generator_llm must be a mapping, got {type(config)}")

    kind_raw = _get_llm_kind(config)
    kind = _normalize_llm_kind(kind_raw)
    if not kind:
        raise ConfigurationError("generator_llm needs a 'type', e.g. 'type: OpenAIChatLike'")

    cls = _LLM_REGISTRY.get(kind)
    if cls is None:
        raise ConfigurationError(
            f"Unknown generator_llm type '{kind_raw}' (read as '{kind}')",
            {"supported": sorted(_LLM_REGISTRY)},
        )
    return cls.from_config_dict(dict(config), callback_manager=callback_manager)


__all__ = [
    "BaseLLM",
    "OpenAILikeLLM",
    "OpenAIChatLikeLLM",
    "create_llm",
]
