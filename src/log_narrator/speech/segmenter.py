"""
Text Segmentation for Speech Requests.

Splits an utterance into ordered chunks no longer than ``max_length``
characters, the unit actually sent to the TTS backend.

Strategy (each level only applies to pieces still over the limit):
    1. Paragraphs (blank lines)
    2. Sentences (. ! ? … followed by whitespace or end, and 。！？)
    3. Clauses (, ; : followed by whitespace or end, and 、，；：)
    4. Forced slices of exactly ``max_length`` characters

At every level, boundary punctuation stays with the piece before it and
adjacent pieces are greedily regrouped while they fit. Chunks are trimmed,
except forced slices, which keep their exact length.

Example:
    >>> split_text("First sentence here. Second one.", max_length=22)
    ['First sentence here.', 'Second one.']

Segmentation is pure: the same input always gives the same chunks, so a
task can be re-segmented at any time.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Pattern

from log_narrator.core.logging import get_logger, verbose
from log_narrator.utils.timeit import timeit

_LOG = get_logger("log-narrator.segmenter")


# =============================================================================
# Boundary Patterns
# =============================================================================

# Blank line, including whitespace-only lines and any indentation after it
_PARAGRAPH = re.compile(r"\n[ \t]*\n\s*")

# Latin terminators need trailing whitespace (or end) so "3.14" and "e.g" hold
_SENTENCE = re.compile(r"[.!?…]+(?=\s|$)\s*|[。！？]+\s*")

_CLAUSE = re.compile(r"[,;:]+(?=\s|$)\s*|[、，；：]+\s*")

_LEVELS: List[Pattern[str]] = [_PARAGRAPH, _SENTENCE, _CLAUSE]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class Chunk:
    """
    One bounded-length slice of a speak task's text.

    Attributes:
        text: Text sent to the backend.
        index: Position within the task, starting at 0.
        parent_task_id: Task the chunk belongs to.
    """
    text: str
    index: int
    parent_task_id: int = 0


# =============================================================================
# Segmentation
# =============================================================================

def split_text(text: str, max_length: int) -> List[str]:
    """
    Split ``text`` into chunk strings of at most ``max_length`` characters.

    Args:
        text: Utterance text.
        max_length: Maximum characters per chunk.

    Returns:
        Chunk strings in order; empty for blank input.

    Raises:
        ValueError: If max_length is not positive.
    """
    if max_length <= 0:
        raise ValueError(f"max_length must be positive, got {max_length}")
    return _split(text, max_length, 0)


def segment(text: str, max_length: int, task_id: int = 0) -> List[Chunk]:
    """Segment ``text`` into Chunk objects tagged with ``task_id``."""
    with timeit("segment") as t:
        parts = split_text(text, max_length)
    chunks = [Chunk(text=part, index=i, parent_task_id=task_id) for i, part in enumerate(parts)]
    verbose(
        _LOG, "segmented",
        chunks=len(chunks),
        chars=len(text),
        max_length=max_length,
        seconds=round(t.seconds, 4),
    )
    return chunks


# =============================================================================
# Helper Functions
# =============================================================================

def _split(text: str, max_length: int, level: int) -> List[str]:
    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= max_length:
        return [stripped]
    if level >= len(_LEVELS):
        return _force_slice(stripped, max_length)

    out: List[str] = []
    current = ""
    for piece in _split_after(text, _LEVELS[level]):
        candidate = current + piece
        if len(candidate.strip()) <= max_length:
            current = candidate
            continue

        if current.strip():
            out.append(current.strip())
        current = ""

        if len(piece.strip()) <= max_length:
            current = piece
        else:
            out.extend(_split(piece, max_length, level + 1))

    if current.strip():
        out.append(current.strip())
    return out


def _split_after(text: str, boundary: Pattern[str]) -> List[str]:
    """Cut ``text`` after each boundary match; the match stays with the left piece."""
    pieces: List[str] = []
    start = 0
    for m in boundary.finditer(text):
        if m.end() > start:
            pieces.append(text[start:m.end()])
            start = m.end()
    if start < len(text):
        pieces.append(text[start:])
    return pieces


def _force_slice(text: str, max_length: int) -> List[str]:
    # Slices are not re-trimmed so each one is exactly max_length (last may be shorter)
    slices = (text[i:i + max_length] for i in range(0, len(text), max_length))
    return [s for s in slices if s.strip()]
