"""career_rag.knowledge

Static career knowledge base and keyword skill analysis.

Modules
-------
knowledge_base
    YAML-backed tables (standards, job boards, requirements, aliases, profiles).
skills
    Keyword skill extraction, skill gaps and coverage scoring.
"""
from .knowledge_base import KnowledgeBase, SourcePassage, load_knowledge_base
from .skills import coverage_score, extract_skills, skill_gaps

__all__ = [
    "KnowledgeBase",
    "SourcePassage",
    "load_knowledge_base",
    "coverage_score",
    "extract_skills",
    "skill_gaps",
]
