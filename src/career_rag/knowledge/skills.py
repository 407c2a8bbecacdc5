"""career_rag.knowledge.skills

Keyword skill extraction and gap analysis over the knowledge base tables.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Sequence

from career_rag.knowledge.knowledge_base import KnowledgeBase


def extract_skills(text: str, skill_aliases: Mapping[str, Sequence[str]]) -> List[str]:
    """Return canonical skills whose aliases occur in ``text``.

    A skill is found when any of its aliases appears as a case-insensitive
    substring of ``text``, so ``"Pythonic"`` yields Python and ``"MySQL8"``
    yields SQL. Skills are returned in alias-table order.
    """
    lowered = (text or "").lower()
    if not lowered:
        return []
    return [
        skill
        for skill, aliases in skill_aliases.items()
        if any(alias.lower() in lowered for alias in aliases)
    ]


def _normalise(skill: str) -> str:
    return skill.strip().lower()


def skill_gaps(kb: KnowledgeBase, role: str, present: Iterable[str]) -> List[str]:
    """Return the role requirements not in ``present`` (case-insensitive), in table order."""
    have = {_normalise(s) for s in present}
    return [skill for skill in kb.requirements_for(role) if _normalise(skill) not in have]


def coverage_score(kb: KnowledgeBase, role: str, present: Iterable[str]) -> int:
    """Return the percentage of the role's required skills found in ``present``.

    Unknown roles (no requirements) score 0.
    """
    requirements = kb.requirements_for(role)
    if not requirements:
        return 0
    have = {_normalise(s) for s in present}
    hits = sum(1 for skill in requirements if _normalise(skill) in have)
    return round(100 * hits / len(requirements))


__all__ = [
    "extract_skills",
    "skill_gaps",
    "coverage_score",
]
