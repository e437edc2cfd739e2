"""Tests for transcript discovery."""
import os

import pytest

from log_narrator.core.errors import FilesystemError
from log_narrator.watch.session import default_projects_roots, encode_project_dir, resolve_log_path


def _touch(path, mtime):
    path.write_bytes(b"")
    os.utime(path, (mtime, mtime))


class TestEncodeProjectDir:
    @pytest.mark.parametrize("project,expected", [
        ("/home/me/src/app", "-home-me-src-app"),
        ("/home/me/my_app", "-home-me-my-app"),
        ("/srv/site.example.com", "-srv-site-example-com"),
    ])
    def test_encoding(self, project, expected):
        assert encode_project_dir(project) == expected


class TestResolveLogPath:
    """Session id lookup and newest-transcript fallback."""

    @pytest.fixture
    def project(self, tmp_path):
        directory = tmp_path / "projects" / "-work-app"
        directory.mkdir(parents=True)
        return directory

    def test_newest_transcript(self, tmp_path, project):
        _touch(project / "old.jsonl", 1_000_000)
        _touch(project / "new.jsonl", 2_000_000)
        _touch(project / "notes.txt", 3_000_000)

        path = resolve_log_path("/work/app", projects_root=tmp_path / "projects")
        assert path == project / "new.jsonl"

    def test_explicit_session(self, tmp_path, project):
        _touch(project / "old.jsonl", 1_000_000)
        _touch(project / "new.jsonl", 2_000_000)

        path = resolve_log_path("/work/app", session_id="old", projects_root=tmp_path / "projects")
        assert path == project / "old.jsonl"

    def test_unknown_session(self, tmp_path, project):
        _touch(project / "a.jsonl", 1_000_000)
        with pytest.raises(FilesystemError) as exc:
            resolve_log_path("/work/app", session_id="missing", projects_root=tmp_path / "projects")
        assert exc.value.path.endswith("missing.jsonl")

    def test_no_transcripts(self, tmp_path, project):
        with pytest.raises(FilesystemError):
            resolve_log_path("/work/app", projects_root=tmp_path / "projects")

    def test_unknown_project(self, tmp_path, project):
        with pytest.raises(FilesystemError):
            resolve_log_path("/other/app", projects_root=tmp_path / "projects")

    def test_default_roots_searched_in_order(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        second = tmp_path / ".config" / "claude" / "projects" / "-work-app"
        second.mkdir(parents=True)
        _touch(second / "s.jsonl", 1_000_000)

        roots = default_projects_roots()
        assert roots[0] == tmp_path / ".claude" / "projects"
        assert resolve_log_path("/work/app") == second / "s.jsonl"
