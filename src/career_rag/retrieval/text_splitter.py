"""career_rag.retrieval.text_splitter

Resume chunking utilities for the retrieval layer.

This module converts raw resume text into bounded-size, labelled
:class:`~career_rag.common.schemas.Chunk` objects. Lines are accumulated
greedily up to a character budget and each chunk is classified into a resume
section by keyword heuristics.

Classes
-------
ResumeChunker
    Greedy line-accumulating chunker with section classification.

Functions
---------
classify_chunk
    Infer the resume section type of a piece of text.
chunk_document
    Chunk a document with a :class:`ResumeChunker`.
"""

from typing import List, Tuple

from career_rag.common.schemas import Chunk

DEFAULT_MAX_CHUNK_CHARS = 500

# Order is significant: the first matching rule wins.
SECTION_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("experience", ("experience", "work history")),
    ("education", ("education", "degree")),
    ("skills", ("skill", "technical")),
    ("projects", ("project", "portfolio")),
    ("summary", ("summary", "objective")),
    ("certifications", ("certification", "certificate")),
)


def classify_chunk(text: str) -> str:
    """Return the section type of ``text``, or ``"other"`` if no rule matches."""
    lowered = text.lower()
    for chunk_type, keywords in SECTION_RULES:
        if any(keyword in lowered for keyword in keywords):
            return chunk_type
    return "other"


def _line_range(chunk_text: str, document: str) -> Tuple[int, int]:
    """Return the ``(start, end)`` line numbers of ``chunk_text`` in ``document``.

    Known limitation: when the chunk is not found verbatim (blank lines were
    dropped from inside it) ``start`` is reported as 0.
    """
    offset = document.find(chunk_text)
    start = document.count("\n", 0, offset) if offset >= 0 else 0
    return start, start + len(chunk_text.split("\n"))


class ResumeChunker:
    """Split a resume into labelled, size-bounded chunks.

    Lines are appended to a running buffer joined by ``"\\n"``. When appending
    the next line would make the buffer longer than ``max_chunk_chars`` and
    the buffer is non-empty, the buffer is emitted and a new one is started
    with that line. A single line longer than the budget is emitted on its own.

    Parameters
    ----------
    max_chunk_chars : int, optional
        Maximum characters per chunk. Defaults to 500.
    """

    def __init__(self, max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS):
        if max_chunk_chars <= 0:
            raise ValueError(f"max_chunk_chars must be positive, got {max_chunk_chars}")
        self.max_chunk_chars = max_chunk_chars

    def _make_chunk(self, buffer: str, document: str) -> Chunk:
        text = buffer.strip()
        return Chunk(text=text, type=classify_chunk(text), line_range=_line_range(text, document))

    def chunk(self, document: str) -> List[Chunk]:
        """Chunk ``document`` eagerly.

        Parameters
        ----------
        document : str
            Raw resume text.

        Returns
        -------
        list[Chunk]
            Chunks in document order. Blank lines are dropped.
        """
        chunks: List[Chunk] = []
        buffer = ""

        for line in (document or "").split("\n"):
            if not line.strip():
                continue
            if buffer and len(buffer) + 1 + len(line) > self.max_chunk_chars:
                chunks.append(self._make_chunk(buffer, document))
                buffer = line
            else:
                buffer = f"{buffer}\n{line}" if buffer else line

        if buffer.strip():
            chunks.append(self._make_chunk(buffer, document))

        return chunks


def chunk_document(document: str, max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS) -> List[Chunk]:
    """Chunk ``document`` with a :class:`ResumeChunker`."""
    return ResumeChunker(max_chunk_chars).chunk(document)


__all__ = [
    "SECTION_RULES",
    "ResumeChunker",
    "classify_chunk",
    "chunk_document",
]
