"""career_rag.common.errors

Exception hierarchy for the career RAG core.

Only :class:`AnalysisFailedError` is meant to reach callers of the pipeline.
Degraded-mode errors are raised and recovered inside the pipeline so that a
lower-quality result can still be returned.

Classes
-------
CareerRAGError
    Base exception carrying a message and a details mapping.
ConfigurationError
    Non-recoverable misconfiguration of an external collaborator.
DegradedModeError
    An external collaborator was unavailable or returned unusable output.
MalformedResponseError
    Generation output could not be repaired into structured data.
AnalysisFailedError
    Request-level hard failure, tagged with the failing stage.
DimensionMismatchError
    Vector dimensionality is inconsistent within one index.
IndexFrozenError
    An item was added to a vector index after it was built.
"""

from __future__ import annotations

from typing import Any


class CareerRAGError(Exception):
    """Base exception for all career RAG errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CareerRAGError):
    """Raised when a collaborator is misconfigured and cannot recover."""


class DegradedModeError(CareerRAGError):
    """Raised when a collaborator is unavailable; always recovered locally."""


class MalformedResponseError(DegradedModeError):
    """Raised when generated text cannot be parsed into structured data."""

    def __init__(self, message: str, raw_text: str | None = None) -> None:
        details = {}
        if raw_text is not None:
            details["raw_excerpt"] = raw_text[:200]
        super().__init__(message, details)


class AnalysisFailedError(CareerRAGError):
    """Hard, request-level failure.

    Parameters
    ----------
    stage : str
        Pipeline stage that failed (e.g., ``"generation"``).
    message : str
        Human-readable error message.
    """

    def __init__(self, stage: str, message: str, details: dict[str, Any] | None = None) -> None:
        details = dict(details or {})
        details["stage"] = stage
        self.stage = stage
        super().__init__(message, details)


class DimensionMismatchError(CareerRAGError, ValueError):
    """Raised when a vector does not match the index dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )


class IndexFrozenError(CareerRAGError, RuntimeError):
    """Raised when adding to a vector index that has already been built."""


__all__ = [
    "CareerRAGError",
    "ConfigurationError",
    "DegradedModeError",
    "MalformedResponseError",
    "AnalysisFailedError",
    "DimensionMismatchError",
    "IndexFrozenError",
]
