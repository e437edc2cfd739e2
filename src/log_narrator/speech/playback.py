"""
Audio Playback.

This module provides:
    - AudioPlayer: Base class for players
    - CommandPlayer: Runs a user-configured command with the file path appended
    - DefaultPlayer: First available platform player
    - AudioArtifacts: Scoped temporary WAV files for playback
    - build_player(): Pick a player from PlaybackConfig

Players run as subprocesses on the event loop. A player that exits non-zero,
cannot be started, or runs past ``timeout_s`` raises PlaybackError; on
timeout the process is killed first.

Default player lookup order:
    Windows: PowerShell Media.SoundPlayer
    Others:  afplay, paplay, aplay, ffplay
"""
from __future__ import annotations

import asyncio
import os
import shlex
import shutil
import sys
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from log_narrator.core.config import Defaults, PlaybackConfig
from log_narrator.core.errors import FilesystemError, PlaybackError
from log_narrator.core.logging import debug, get_logger, verbose, warn

_LOG = get_logger("log-narrator.playback")

_DEFAULT_CANDIDATES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("afplay", ()),
    ("paplay", ()),
    ("aplay", ("-q",)),
    ("ffplay", ("-nodisp", "-autoexit", "-loglevel", "quiet")),
)


class AudioPlayer:
    """Plays one audio file to completion."""
    name: str = "base"

    async def play(self, path: Path) -> None:
        raise NotImplementedError


class CommandPlayer(AudioPlayer):
    """
    Player built from a command line, e.g. ``"mpv --no-video"``.

    The audio file path is appended as the last argument.
    """
    name = "command"

    def __init__(self, command: str, timeout_s: float = Defaults.PLAYBACK_TIMEOUT_S):
        argv = shlex.split(command)
        if not argv:
            raise PlaybackError("playback command is empty")
        self.argv = argv
        self.timeout_s = timeout_s

    async def play(self, path: Path) -> None:
        await _run_player(self.argv + [str(path)], self.timeout_s)


class DefaultPlayer(AudioPlayer):
    """First player found on PATH; resolved on first use and cached."""
    name = "default"

    def __init__(self, timeout_s: float = Defaults.PLAYBACK_TIMEOUT_S, platform: Optional[str] = None):
        self.timeout_s = timeout_s
        self.platform = platform or sys.platform
        self._prefix: Optional[List[str]] = None

    def resolve(self) -> List[str]:
        """
        Argument prefix of the player to use.

        Raises:
            PlaybackError: No supported player is installed.
        """
        if self._prefix is not None:
            return self._prefix

        if self.platform == "win32":
            powershell = shutil.which("powershell") or shutil.which("pwsh")
            if powershell:
                self._prefix = [powershell, "-NoProfile", "-NonInteractive", "-Command"]
        else:
            for name, args in _DEFAULT_CANDIDATES:
                found = shutil.which(name)
                if found:
                    self._prefix = [found, *args]
                    break

        if self._prefix is None:
            raise PlaybackError("no audio player found", {"platform": self.platform})
        debug(_LOG, "player_resolved", player=self._prefix[0])
        return self._prefix

    async def play(self, path: Path) -> None:
        prefix = self.resolve()
        if self.platform == "win32":
            quoted = str(path).replace("'", "''")
            argv = prefix + [f"(New-Object Media.SoundPlayer '{quoted}').PlaySync()"]
        else:
            argv = prefix + [str(path)]
        await _run_player(argv, self.timeout_s)


def build_player(config: PlaybackConfig) -> AudioPlayer:
    if config.command:
        return CommandPlayer(config.command, timeout_s=config.timeout_s)
    return DefaultPlayer(timeout_s=config.timeout_s)


async def _run_player(argv: Sequence[str], timeout_s: float) -> None:
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise PlaybackError(f"cannot start player: {e}", {"command": argv[0]}) from e

    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        await _kill(proc)
        raise PlaybackError(f"player timed out after {timeout_s}s", {"command": argv[0]}) from e
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    if proc.returncode != 0:
        detail = (stderr or b"").decode("utf-8", errors="replace").strip()[:200]
        raise PlaybackError(
            f"player exited with status {proc.returncode}",
            {"command": argv[0], "returncode": proc.returncode, "stderr": detail},
        )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()


class AudioArtifacts:
    """
    Temporary audio files in a scratch directory.

    Usage:
        artifacts = AudioArtifacts("/tmp/log-narrator")
        async with artifacts.acquire(wav_bytes) as path:
            await player.play(path)
        # path is gone here, whatever happened inside the block
    """

    def __init__(self, scratch_dir: str | Path, suffix: str = ".wav"):
        self.scratch_dir = Path(scratch_dir)
        self.suffix = suffix

    def ensure_dir(self) -> Path:
        """
        Create the scratch directory if needed.

        Raises:
            FilesystemError: The directory cannot be created or written.
        """
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"cannot create scratch directory: {e}", path=str(self.scratch_dir)) from e
        if not os.access(self.scratch_dir, os.W_OK):
            raise FilesystemError("scratch directory is not writable", path=str(self.scratch_dir))
        return self.scratch_dir

    @asynccontextmanager
    async def acquire(self, audio: bytes) -> AsyncIterator[Path]:
        """Write ``audio`` to a fresh file and delete it when the block exits."""
        directory = self.ensure_dir()
        try:
            fd, name = tempfile.mkstemp(prefix="speech_", suffix=self.suffix, dir=directory)
        except OSError as e:
            raise FilesystemError(f"cannot create audio file: {e}", path=str(directory)) from e

        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(audio)
            verbose(_LOG, "artifact_written", path=path.name, bytes=len(audio))
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                warn(_LOG, "artifact_cleanup_failed", path=str(path), error=str(e))
