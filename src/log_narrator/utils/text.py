"""
Text helpers for turning assistant replies into speakable text.

Code-block masking:
    Fenced code (```...```) is never read aloud. A block introduced by a
    lead-in line ("以下のコード:", "Here is the fix:") becomes a short spoken
    placeholder on its own line, replacing the lead-in phrase and colon, so
    the listener knows something was skipped; any other block
    becomes a single newline. Runs of 3+ newlines collapse to 2 and the
    result is trimmed. Inline `code` is kept because it is usually a short
    identifier worth hearing.

Example:
    >>> mask_code_blocks("Here is the fix:\\n```py\\nx = 1\\n```\\nDone.", "There is a code block.")
    'Here is the fix\\nThere is a code block.\\nDone.'
"""
from __future__ import annotations

import re

# Optional lead-in phrase, optional colon, then the line break before the fence.
_FENCED_BLOCK = re.compile(
    r"(?P<lead>(?:以下の|次の|こんな|このような)?(?:コード|実装|例)?[:：]?\s*\n)?```[\s\S]*?```"
)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")

_WS_RE = re.compile(r"\s+")


def mask_code_blocks(text: str, placeholder: str) -> str:
    """
    Replace fenced code blocks with a placeholder or a newline.

    Args:
        text: Raw assistant text.
        placeholder: Spoken replacement for blocks that have a lead-in.

    Returns:
        Masked, trimmed text (may be empty).
    """
    def _replace(match: re.Match) -> str:
        lead = match.group("lead")
        if lead and lead.strip():
            # The lead-in words stay, only the colon goes; keep them apart.
            return "\n" + placeholder
        return "\n"

    masked = _FENCED_BLOCK.sub(_replace, text)
    masked = _EXCESS_NEWLINES.sub("\n\n", masked)
    return masked.strip()


def preview(text: str, limit: int = 60) -> str:
    """Single-line preview for log output, cut at ``limit`` characters."""
    flat = _WS_RE.sub(" ", text).strip()
    if limit <= 0:
        return ""
    if len(flat) <= limit:
        return flat
    return flat[: max(limit - 3, 0)] + "..."
