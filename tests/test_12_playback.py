"""
Tests for audio players and scratch files.

CommandPlayer is exercised with the running interpreter standing in for an
audio player, so no sound device is needed.
"""
import asyncio
import shlex
import sys

import pytest

from log_narrator.core.config import PlaybackConfig
from log_narrator.core.errors import FilesystemError, PlaybackError
from log_narrator.speech import playback
from log_narrator.speech.playback import AudioArtifacts, CommandPlayer, DefaultPlayer, build_player


def _python_command(code: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


class TestCommandPlayer:
    """User-configured player commands."""

    def test_path_appended(self, tmp_path):
        out = tmp_path / "out.txt"
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        code = f"import sys, pathlib; pathlib.Path({str(out)!r}).write_text(sys.argv[-1])"

        asyncio.run(CommandPlayer(_python_command(code)).play(audio))
        assert out.read_text() == str(audio)

    def test_non_zero_exit(self, tmp_path):
        player = CommandPlayer(_python_command("import sys; sys.stderr.write('no device'); sys.exit(3)"))

        with pytest.raises(PlaybackError) as exc:
            asyncio.run(player.play(tmp_path / "a.wav"))
        assert exc.value.details["returncode"] == 3
        assert exc.value.details["stderr"] == "no device"

    def test_timeout_kills_player(self, tmp_path):
        player = CommandPlayer(_python_command("import time; time.sleep(30)"), timeout_s=0.5)

        with pytest.raises(PlaybackError) as exc:
            asyncio.run(player.play(tmp_path / "a.wav"))
        assert "timed out" in exc.value.message

    def test_missing_binary(self, tmp_path):
        player = CommandPlayer("definitely-not-a-player-binary")
        with pytest.raises(PlaybackError):
            asyncio.run(player.play(tmp_path / "a.wav"))

    def test_empty_command(self):
        with pytest.raises(PlaybackError):
            CommandPlayer("   ")


class TestDefaultPlayer:
    """Platform player lookup."""

    def test_first_available_wins(self, monkeypatch):
        available = {"paplay": "/usr/bin/paplay", "aplay": "/usr/bin/aplay"}
        monkeypatch.setattr(playback.shutil, "which", lambda name: available.get(name))
        assert DefaultPlayer(platform="linux").resolve() == ["/usr/bin/paplay"]

    def test_aplay_gets_quiet_flag(self, monkeypatch):
        monkeypatch.setattr(playback.shutil, "which", lambda name: "/usr/bin/aplay" if name == "aplay" else None)
        assert DefaultPlayer(platform="linux").resolve() == ["/usr/bin/aplay", "-q"]

    def test_macos_afplay(self, monkeypatch):
        monkeypatch.setattr(playback.shutil, "which", lambda name: f"/usr/bin/{name}")
        assert DefaultPlayer(platform="darwin").resolve() == ["/usr/bin/afplay"]

    def test_windows_powershell(self, monkeypatch):
        monkeypatch.setattr(playback.shutil, "which", lambda name: "C:/pwsh.exe" if name == "pwsh" else None)
        prefix = DefaultPlayer(platform="win32").resolve()
        assert prefix[0] == "C:/pwsh.exe"
        assert "-Command" in prefix

    def test_nothing_installed(self, monkeypatch):
        monkeypatch.setattr(playback.shutil, "which", lambda name: None)
        with pytest.raises(PlaybackError) as exc:
            DefaultPlayer(platform="linux").resolve()
        assert "no audio player" in exc.value.message

    def test_resolution_cached(self, monkeypatch):
        calls = []

        def which(name):
            calls.append(name)
            return "/usr/bin/afplay" if name == "afplay" else None

        monkeypatch.setattr(playback.shutil, "which", which)
        player = DefaultPlayer(platform="darwin")
        player.resolve()
        player.resolve()
        assert calls == ["afplay"]


class TestBuildPlayer:
    def test_command_configured(self):
        player = build_player(PlaybackConfig(command="mpv --no-video", timeout_s=5))
        assert isinstance(player, CommandPlayer)
        assert player.argv == ["mpv", "--no-video"]
        assert player.timeout_s == 5

    def test_default(self):
        assert isinstance(build_player(PlaybackConfig()), DefaultPlayer)


class TestAudioArtifacts:
    """Scoped scratch files."""

    def test_file_exists_only_inside_block(self, tmp_path):
        artifacts = AudioArtifacts(tmp_path / "scratch")

        async def main():
            async with artifacts.acquire(b"RIFFdata") as path:
                assert path.read_bytes() == b"RIFFdata"
                assert path.name.startswith("speech_") and path.suffix == ".wav"
                return path

        path = asyncio.run(main())
        assert not path.exists()

    def test_removed_on_error(self, tmp_path):
        artifacts = AudioArtifacts(tmp_path)
        seen = []

        async def main():
            async with artifacts.acquire(b"x") as path:
                seen.append(path)
                raise PlaybackError("device busy")

        with pytest.raises(PlaybackError):
            asyncio.run(main())
        assert not seen[0].exists()

    def test_unique_names(self, tmp_path):
        artifacts = AudioArtifacts(tmp_path)

        async def main():
            async with artifacts.acquire(b"a") as first:
                async with artifacts.acquire(b"b") as second:
                    return first != second

        assert asyncio.run(main())

    def test_scratch_dir_blocked_by_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(FilesystemError):
            AudioArtifacts(blocker / "scratch").ensure_dir()
