"""career_rag.generation.response_parser

Defensive parsing of structured LLM output.

Model output is expected to be a JSON object, but is often wrapped in code
fences, surrounded by prose, or slightly malformed. :func:`parse_json_response`
applies a fixed sequence of repair strategies and raises
:class:`~career_rag.common.errors.MalformedResponseError` only when all of them
fail. The pydantic models validate the repaired object with optional fields
and explicit defaults.

Classes
-------
RoleAnalysis
    Per-role analysis returned by the ``roles_analysis`` prompt.
GenerationPayload
    Top-level analysis payload.
SectionAnalysis
    Per-chunk analysis returned by the ``section_analysis`` prompt.

Functions
---------
parse_json_response
    Repair and parse a JSON object from model text.
parse_generation_payload
    Parse model text into a :class:`GenerationPayload`.
parse_section_analysis
    Parse model text into a :class:`SectionAnalysis`.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from career_rag.common.errors import MalformedResponseError

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")

SALVAGE_ARRAY_FIELDS = (
    "skills_present",
    "skills_missing",
    "matched_skills",
    "skills_found",
    "strengths",
    "gaps",
    "recommendations",
)
SALVAGE_NUMBER_FIELDS = ("match_score", "confidence", "relevance_score")


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _scan_balanced_objects(text: str):
    """Yield each top-level ``{...}`` span, skipping braces inside strings."""
    in_string = False
    escape_next = False
    depth = 0
    start = -1
    for i, ch in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            if in_string:
                escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start != -1:
                yield text[start:i + 1]
                start = -1


def _salvage_array(text: str, field: str) -> Optional[list[str]]:
    match = re.search(rf'"{field}"\s*:\s*\[([^\]]*)\]', text, re.IGNORECASE)
    if not match:
        return None
    body = match.group(1)
    try:
        items = json.loads(f"[{body}]")
    except ValueError:
        items = [item.strip().strip("'\"") for item in body.split(",")]
    return [str(item) for item in items if isinstance(item, (str, int, float)) and str(item).strip()]


def _salvage_number(text: str, field: str) -> Optional[float]:
    match = re.search(rf'"{field}"\s*:\s*(-?\d+(?:\.\d+)?)', text, re.IGNORECASE)
    return float(match.group(1)) if match else None


def _salvage_fields(text: str) -> dict[str, Any]:
    salvaged: dict[str, Any] = {}
    for field in SALVAGE_ARRAY_FIELDS:
        values = _salvage_array(text, field)
        if values is not None:
            salvaged[field] = values
    for field in SALVAGE_NUMBER_FIELDS:
        value = _salvage_number(text, field)
        if value is not None:
            salvaged[field] = value
    return salvaged


def parse_json_response(text: Any) -> dict[str, Any]:
    """Extract a JSON object from model output.

    Strategies, in order: strip code fences; parse directly; parse each
    balanced-brace span (string and escape aware); parse the slice from the
    first ``{`` to the last ``}``; retry after removing trailing commas;
    salvage known array and number fields by pattern.

    Parameters
    ----------
    text : Any
        Raw model output. Non-string values are rejected.

    Returns
    -------
    dict[str, Any]
        The first object recovered.

    Raises
    ------
    MalformedResponseError
        If no strategy recovers any structured data.
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError("Model returned no text", raw_text=text if isinstance(text, str) else None)

    cleaned = _FENCE_PATTERN.sub("", text).strip()

    parsed = _loads_object(cleaned)
    if parsed is not None:
        return parsed

    for span in _scan_balanced_objects(cleaned):
        parsed = _loads_object(span)
        if parsed is not None:
            return parsed

    first, last = cleaned.find("{"), cleaned.rfind("}")
    sliced = cleaned[first:last + 1] if 0 <= first < last else cleaned

    for candidate in (sliced, cleaned):
        parsed = _loads_object(_TRAILING_COMMA_PATTERN.sub(r"\1", candidate))
        if parsed is not None:
            return parsed

    salvaged = _salvage_fields(cleaned)
    if salvaged:
        return salvaged

    raise MalformedResponseError("Model returned non-JSON or malformed JSON", raw_text=text)


def _as_string_list(value: Any, *, object_key: str | None = None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []

    items: list[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get(object_key or "skill") or entry.get("name")
        if isinstance(entry, (int, float)) and not isinstance(entry, bool):
            entry = str(entry)
        if isinstance(entry, str) and entry.strip():
            items.append(entry.strip())
    return items


def _as_optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class _LenientModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RoleAnalysis(_LenientModel):
    """Analysis of the resume against one role.

    ``missing_required_skills`` accepts plain strings or objects with a
    ``skill`` key.
    """

    role_name: Optional[str] = None
    matched_skills: list[str] = []
    missing_required_skills: list[str] = []
    missing_preferred_skills: list[str] = []
    confidence: Optional[float] = None

    @field_validator("matched_skills", "missing_required_skills", "missing_preferred_skills", mode="before")
    @classmethod
    def _coerce_skills(cls, value: Any) -> list[str]:
        return _as_string_list(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Optional[float]:
        return _as_optional_number(value)

    @field_validator("role_name", mode="before")
    @classmethod
    def _coerce_role_name(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


class GenerationPayload(_LenientModel):
    """Structured analysis payload.

    Both the per-role shape (``roles``) and the flat shape (``skills_present``,
    ``skills_missing``, ``match_score``) are accepted.
    """

    roles: list[RoleAnalysis] = []
    skills_present: list[str] = []
    skills_missing: list[str] = []
    match_score: Optional[float] = None

    @field_validator("roles", mode="before")
    @classmethod
    def _coerce_roles(cls, value: Any) -> list[Any]:
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    @field_validator("skills_present", "skills_missing", mode="before")
    @classmethod
    def _coerce_skills(cls, value: Any) -> list[str]:
        return _as_string_list(value)

    @field_validator("match_score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> Optional[float]:
        return _as_optional_number(value)

    @property
    def is_empty(self) -> bool:
        return not (self.roles or self.skills_present or self.skills_missing or self.match_score is not None)


class SectionAnalysis(_LenientModel):
    """Analysis of one resume section."""

    skills_found: list[str] = []
    strengths: list[str] = []
    gaps: list[str] = []
    recommendations: list[str] = []
    relevance_score: Optional[float] = None

    @field_validator("skills_found", "strengths", "gaps", "recommendations", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> list[str]:
        return _as_string_list(value, object_key="text")

    @field_validator("relevance_score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> Optional[float]:
        return _as_optional_number(value)


def _validate(model: type[_LenientModel], text: Any):
    data = parse_json_response(text)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"Model output failed validation: {exc}", raw_text=str(text)) from exc


def parse_generation_payload(text: Any) -> GenerationPayload:
    """Parse model text into a :class:`GenerationPayload`.

    Raises
    ------
    MalformedResponseError
        If the text cannot be repaired or carries no analysis fields.
    """
    payload = _validate(GenerationPayload, text)
    if payload.is_empty:
        raise MalformedResponseError("Model output carried no analysis fields", raw_text=str(text))
    return payload


def parse_section_analysis(text: Any) -> SectionAnalysis:
    """Parse model text into a :class:`SectionAnalysis`."""
    return _validate(SectionAnalysis, text)


__all__ = [
    "RoleAnalysis",
    "GenerationPayload",
    "SectionAnalysis",
    "parse_json_response",
    "parse_generation_payload",
    "parse_section_analysis",
]
