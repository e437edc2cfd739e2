"""
Session log discovery.

Transcripts are stored per project under a projects root, in a directory
named after the project path with ``/``, ``_`` and ``.`` replaced by ``-``:

    ~/.claude/projects/-home-me-src-my-app/<session-id>.jsonl

Given a session id the file is addressed directly; otherwise the most
recently modified transcript of the project is used.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Sequence

from log_narrator.core.errors import FilesystemError
from log_narrator.core.logging import get_logger, verbose

_LOG = get_logger("log-narrator.session")

_PROJECT_DIR_CHARS = re.compile(r"[/_.]")


def default_projects_roots() -> List[Path]:
    home = Path.home()
    return [
        home / ".claude" / "projects",
        home / ".config" / "claude" / "projects",
    ]


def encode_project_dir(project_dir: str | Path) -> str:
    """Map a project path to its transcript directory name."""
    return _PROJECT_DIR_CHARS.sub("-", str(project_dir))


def resolve_log_path(
    project_dir: str | Path,
    session_id: Optional[str] = None,
    projects_root: Optional[str | Path] = None,
) -> Path:
    """
    Locate the transcript to follow.

    Args:
        project_dir: Absolute project path the session was started in.
        session_id: Explicit session; when omitted the newest ``*.jsonl`` wins.
        projects_root: Root to search; defaults to the known locations in order.

    Raises:
        FilesystemError: No project directory or no matching transcript.
    """
    roots: Sequence[Path] = [Path(projects_root)] if projects_root else default_projects_roots()
    encoded = encode_project_dir(project_dir)

    project_path: Optional[Path] = None
    for root in roots:
        candidate = root.expanduser() / encoded
        if candidate.is_dir():
            project_path = candidate
            break

    if project_path is None:
        searched = ", ".join(str(r) for r in roots)
        raise FilesystemError(f"no transcript directory for {project_dir} (searched: {searched})", path=encoded)

    if session_id:
        path = project_path / f"{session_id}.jsonl"
        if not path.is_file():
            raise FilesystemError(f"session log not found: {path}", path=str(path))
        verbose(_LOG, "session_resolved", path=str(path), session=session_id)
        return path

    logs = [p for p in project_path.glob("*.jsonl") if p.is_file()]
    if not logs:
        raise FilesystemError(f"no session logs in {project_path}", path=str(project_path))

    newest = max(logs, key=lambda p: p.stat().st_mtime)
    verbose(_LOG, "session_resolved", path=str(newest), candidates=len(logs))
    return newest
