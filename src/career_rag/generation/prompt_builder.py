"""career_rag.generation.prompt_builder

Jinja2 prompts for resume analysis and relevance rating.

A prompt file is JSON holding one template object or a list of them. Each
object has a ``name``, an optional ``system`` block and a ``user`` block; the
two blocks are joined with a newline and rendered as one Jinja2 template.
Rendering is strict, so a variable the caller forgot to pass raises
``jinja2.UndefinedError`` rather than silently producing an empty grounding
section.

Classes
-------
PromptTemplate
    One compiled prompt and the variables it expects.
PromptBuilder
    Named collection of prompts loaded from ``pkg:``, ``file:`` or path sources.
"""
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union
from pathlib import Path
import json
import warnings
from importlib import resources

from jinja2 import Environment, StrictUndefined, meta

from career_rag.common.errors import ConfigurationError

_ENV = Environment(undefined=StrictUndefined, keep_trailing_newline=False)


class PromptTemplate:
    """Compiled prompt.

    Parameters
    ----------
    name : str
        Registry key.
    system : str or None, optional
        Instructions placed before the user block.
    user : str, optional
        Request body, usually carrying the resume and the retrieved passages.
    """

    def __init__(self, name: str, system: Optional[str] = None, user: str = ""):
        self.name = name
        self.system = system
        self.user = user or ""
        self.source = "\n".join(block for block in (system, self.user) if block)
        self._compiled = _ENV.from_string(self.source)

    @property
    def variables(self) -> FrozenSet[str]:
        """Names the template reads from its render context."""
        return frozenset(meta.find_undeclared_variables(_ENV.parse(self.source)))

    def render(self, **context) -> str:
        return self._compiled.render(**context)


class PromptBuilder:
    """Prompts keyed by name.

    Later registrations replace earlier ones with a warning, so a config can
    list the packaged prompts first and override single entries afterwards.
    """

    def __init__(self):
        self.templates: Dict[str, PromptTemplate] = {}

    def register_from_dict(self, data: Dict[str, Any]) -> str:
        """Add one template definition and return its name.

        Raises
        ------
        KeyError
            If the definition has no ``name``.
        TypeError
            If ``name``, ``system`` or ``user`` is not a string.
        ValueError
            If ``name`` is blank.
        """
        try:
            name = data["name"]
        except KeyError:
            raise KeyError("Prompt definition has no 'name'") from None
        if not isinstance(name, str):
            raise TypeError(f"Prompt name must be a str, got {type(name)!r}")
        if not name.strip():
            raise ValueError("Prompt name is blank")

        blocks = {"system": data.get("system"), "user": data.get("user") or ""}
        for block, text in blocks.items():
            if text is not None and not isinstance(text, str):
                raise TypeError(f"Prompt '{name}' {block} block must be a str, got {type(text)!r}")

        if name in self.templates:
            warnings.warn(f"Prompt '{name}' replaced by a later definition")
        self.templates[name] = PromptTemplate(name, **blocks)
        return name

    def _register_json(self, text: str, origin: str) -> List[str]:
        payload = json.loads(text)
        definitions = [payload] if isinstance(payload, dict) else payload
        if not isinstance(definitions, list):
            raise TypeError(f"{origin}: expected a prompt object or a list of them, got {type(payload)!r}")

        names = []
        for definition in definitions:
            if not isinstance(definition, dict):
                raise TypeError(f"{origin}: prompt entries must be objects, got {type(definition)!r}")
            names.append(self.register_from_dict(definition))
        return names

    def register_from_file(self, path: Union[Path, str], base_dir: Optional[Path] = None) -> List[str]:
        """Load a JSON prompt file, resolving relative paths against ``base_dir``.

        Raises
        ------
        FileNotFoundError
            If the file is missing.
        ValueError
            If the file is not ``.json``.
        """
        path = Path(path)
        if base_dir is not None and not path.is_absolute():
            path = Path(base_dir) / path
        path = path.resolve()

        if not path.is_file():
            raise FileNotFoundError(f"No prompt file at {path}")
        if path.suffix.lower() != ".json":
            raise ValueError(f"Prompt files must be JSON, got '{path.suffix}'")
        return self._register_json(path.read_text(encoding="utf-8"), str(path))

    def register_from_source(self, source: str, base_dir: Optional[Path] = None) -> List[str]:
        """Load prompts from ``pkg:<package>:<resource>``, ``file:<path>`` or a bare path."""
        if not isinstance(source, str):
            raise TypeError(f"Prompt source must be a str, got {type(source)!r}")

        if not source.startswith("pkg:"):
            path = source[len("file:"):].strip() if source.startswith("file:") else source
            return self.register_from_file(path, base_dir=base_dir)

        package, sep, resource = source[len("pkg:"):].partition(":")
        if not sep:
            raise ValueError(f"Expected 'pkg:<package>:<resource>', got '{source}'")
        package, resource = package.strip(), resource.strip()
        if not resource.lower().endswith(".json"):
            raise ValueError(f"Prompt resources must be JSON, got '{resource}'")
        try:
            entry = resources.files(package).joinpath(resource)
        except ModuleNotFoundError as e:
            raise FileNotFoundError(f"No package '{package}' for prompt source '{source}'") from e
        if not entry.is_file():
            raise FileNotFoundError(f"No prompt resource at '{source}'")
        return self._register_json(entry.read_text(encoding="utf-8"), source)

    def list_prompts(self) -> List[str]:
        return sorted(self.templates)

    def require(self, names: Iterable[str]) -> None:
        """Check that every prompt in ``names`` is registered.

        Raises
        ------
        ConfigurationError
            Listing the missing prompt names.
        """
        missing = [name for name in names if name not in self.templates]
        if missing:
            raise ConfigurationError(
                f"Prompt sources do not define: {', '.join(missing)}",
                details={"available": self.list_prompts()},
            )

    def get_template(self, name: str) -> PromptTemplate:
        try:
            return self.templates[name]
        except KeyError:
            raise KeyError(f"Unknown prompt '{name}'. Registered: {self.list_prompts()}") from None

    def build(self, name: str, **context) -> str:
        """Render prompt ``name`` with ``context``."""
        return self.get_template(name).render(**context)

    @classmethod
    def from_sources(cls, sources: List[str], base_dir: Optional[Path] = None) -> "PromptBuilder":
        """Builder holding the prompts of every source, later sources winning."""
        builder = cls()
        for source in sources:
            builder.register_from_source(source, base_dir=base_dir)
        return builder
