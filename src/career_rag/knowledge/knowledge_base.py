"""career_rag.knowledge.knowledge_base

Static, versioned career knowledge base.

The knowledge base is plain data loaded from YAML: industry standards per
role, simulated job-board postings, the role requirement table, the skill
alias table and role profiles. It is read-only after loading.

Classes
-------
KnowledgeBase
    Typed view over the YAML tables.
SourcePassage
    A passage found by the simulated external-source search.

Functions
---------
load_knowledge_base
    Load a knowledge base from a ``pkg:`` resource or filesystem path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from career_rag.common.tokenisation import overlap_coefficient, terms

JOB_BOARD_RELEVANCE = 0.8
MIN_CROSS_ROLE_OVERLAP = 0.5


@dataclass(frozen=True)
class SourcePassage:
    """A passage returned by a simulated external source."""

    text: str
    source: str
    relevance: float
    role: Optional[str] = None


def _string_table(raw: Any, name: str) -> Dict[str, List[str]]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise TypeError(f"Knowledge base '{name}' must be a mapping, got {type(raw)}.")
    table: Dict[str, List[str]] = {}
    for key, values in raw.items():
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise TypeError(f"Knowledge base '{name}.{key}' must be a list of strings.")
        table[str(key)] = list(values)
    return table


@dataclass
class KnowledgeBase:
    """Typed view over the knowledge-base tables.

    Attributes
    ----------
    version : int
        Data version of the tables.
    industry_standards : dict[str, list[str]]
        Role to industry requirement statements.
    job_boards : dict[str, list[str]]
        Role to simulated job posting requirements.
    role_requirements : dict[str, list[str]]
        Role to canonical required skill names.
    skill_aliases : dict[str, list[str]]
        Canonical skill name to lower-case aliases.
    role_profiles : dict[str, dict[str, list[str]]]
        Role to ``skills`` and ``responsibilities`` lists.
    """

    version: int = 0
    industry_standards: Dict[str, List[str]] = field(default_factory=dict)
    job_boards: Dict[str, List[str]] = field(default_factory=dict)
    role_requirements: Dict[str, List[str]] = field(default_factory=dict)
    skill_aliases: Dict[str, List[str]] = field(default_factory=dict)
    role_profiles: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KnowledgeBase":
        """Build a knowledge base from a parsed YAML mapping.

        Raises
        ------
        TypeError
            If a table has the wrong shape.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"Knowledge base root must be a mapping, got {type(data)}.")

        profiles_raw = data.get("role_profiles") or {}
        if not isinstance(profiles_raw, Mapping):
            raise TypeError("Knowledge base 'role_profiles' must be a mapping.")
        profiles = {
            str(role): _string_table(profile, f"role_profiles.{role}")
            for role, profile in profiles_raw.items()
        }

        return cls(
            version=int(data.get("version", 0)),
            industry_standards=_string_table(data.get("industry_standards"), "industry_standards"),
            job_boards=_string_table(data.get("job_boards"), "job_boards"),
            role_requirements=_string_table(data.get("role_requirements"), "role_requirements"),
            skill_aliases=_string_table(data.get("skill_aliases"), "skill_aliases"),
            role_profiles=profiles,
        )

    def standards_for(self, role: str) -> List[str]:
        return list(self.industry_standards.get(role, []))

    def requirements_for(self, role: str) -> List[str]:
        return list(self.role_requirements.get(role, []))

    def profile_for(self, role: str) -> Dict[str, List[str]]:
        """Typical skills and responsibilities for ``role``; ``{}`` when unknown."""
        return dict(self.role_profiles.get(role, {}))

    def standards_corpus(self) -> List[Tuple[str, str]]:
        """Return ``(role, statement)`` pairs for the persistent standards index."""
        return [(role, text) for role, texts in self.industry_standards.items() for text in texts]

    def search_job_boards(self, query: str, role: str) -> List[SourcePassage]:
        """Simulated job-board search.

        Postings collected for ``role`` are returned with relevance 0.8.
        Postings for other roles are returned when the overlap coefficient of
        their terms with ``query`` is at least 0.5, with relevance
        ``0.8 * overlap``.
        """
        query_terms = terms(query)
        results: List[SourcePassage] = []
        for board_role, postings in self.job_boards.items():
            for posting in postings:
                if board_role == role:
                    relevance = JOB_BOARD_RELEVANCE
                else:
                    overlap = overlap_coefficient(query_terms, terms(posting))
                    if overlap < MIN_CROSS_ROLE_OVERLAP:
                        continue
                    relevance = JOB_BOARD_RELEVANCE * overlap
                results.append(SourcePassage(posting, "job_board", relevance, board_role))
        return results


def _read_source(source: str, base_dir: Optional[Path]) -> str:
    if source.startswith("pkg:"):
        rest = source[len("pkg:"):]
        if ":" not in rest:
            raise ValueError("pkg: sources must be of the form 'pkg:<package>:<resource_path>'")
        package, resource_path = (part.strip() for part in rest.split(":", 1))
        res = resources.files(package).joinpath(resource_path)
        if not res.is_file():
            raise FileNotFoundError(f"Knowledge base resource not found: {source}")
        return res.read_text(encoding="utf-8")

    if source.startswith("file:"):
        source = source[len("file:"):].strip()
    path = Path(source).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    if not path.exists():
        raise FileNotFoundError(f"Knowledge base file not found: {path}")
    return path.read_text(encoding="utf-8")


def load_knowledge_base(source: str, base_dir: Optional[Path] = None) -> KnowledgeBase:
    """Load a knowledge base from ``pkg:<package>:<resource>``, ``file:<path>`` or a path.

    Parameters
    ----------
    source : str
        Source reference.
    base_dir : Path or None, optional
        Directory used to resolve relative filesystem paths.

    Returns
    -------
    KnowledgeBase
        The loaded knowledge base.
    """
    data = yaml.safe_load(_read_source(source, base_dir)) or {}
    return KnowledgeBase.from_dict(data)


__all__ = [
    "KnowledgeBase",
    "SourcePassage",
    "load_knowledge_base",
]
