"""Shared fakes and fixtures for the log-narrator test suite."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import pytest

from log_narrator.core.config import NarratorConfig, SchedulerConfig
from log_narrator.core.errors import BackendError, PlaybackError
from log_narrator.speech.backend import SpeechBackend, Voice
from log_narrator.speech.playback import AudioArtifacts, AudioPlayer
from log_narrator.speech.scheduler import SpeechScheduler

_ENV_VARS = (
    "SEIKA_HOST", "SEIKA_PORT", "SEIKA_USERNAME", "SEIKA_PASSWORD", "SEIKA_CID",
    "SEIKA_SPEED", "SEIKA_PITCH", "SEIKA_VOLUME", "SEIKA_INTONATION", "SEIKA_EMOTIONS",
    "SEIKA_TEMP_DIR", "SEIKA_PLAY_COMMAND", "SEIKA_MAX_TEXT_LENGTH",
    "LOG_NARRATOR_SESSION_ID", "LOG_NARRATOR_PROJECT_DIR", "LOG_NARRATOR_SETTINGS",
    "LOG_NARRATOR_LOG_DIR", "LOG_NARRATOR_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's SEIKA_* / LOG_NARRATOR_* variables out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


class FakeBackend(SpeechBackend):
    """
    In-memory backend.

    Records every synthesize() call as (text, effects). Texts listed in
    ``fail_on`` raise BackendError. ``on_synthesize`` runs before returning,
    so tests can act while a chunk is "in flight".
    """
    name = "fake"

    def __init__(
        self,
        fail_on: Iterable[str] = (),
        voices: Optional[List[Voice]] = None,
        version: str = "fake-1.0",
        healthy: bool = True,
    ):
        self.fail_on = set(fail_on)
        self.voices = voices if voices is not None else [Voice(id=60041, display_name="Yukari")]
        self.version = version
        self.healthy = healthy
        self.calls: List[Tuple[str, Optional[Dict[str, float]]]] = []
        self.on_synthesize: Optional[Callable[[str], Awaitable[None]]] = None
        self.closed = False

    async def synthesize(self, text, effects=None, emotions=None):
        self.calls.append((text, effects))
        if self.on_synthesize is not None:
            await self.on_synthesize(text)
        if text in self.fail_on:
            raise BackendError("synthesis failed", status=500, body="engine error")
        return b"RIFF" + text.encode("utf-8")

    async def list_voices(self):
        if not self.healthy:
            raise BackendError("connection refused")
        return list(self.voices)

    async def health_check(self):
        if not self.healthy:
            raise BackendError("connection refused")
        return self.version

    async def aclose(self):
        self.closed = True


class FakePlayer(AudioPlayer):
    """
    Records the bytes of every file it is asked to play.

    ``on_play`` receives the 0-based play index and runs while the file
    exists. ``fail_on`` holds play indexes that raise PlaybackError.
    """
    name = "fake"

    def __init__(self, fail_on: Iterable[int] = ()):
        self.fail_on = set(fail_on)
        self.played: List[bytes] = []
        self.paths: List[Path] = []
        self.on_play: Optional[Callable[[int], Awaitable[None]]] = None

    async def play(self, path):
        index = len(self.paths)
        self.paths.append(path)
        self.played.append(path.read_bytes())
        if self.on_play is not None:
            await self.on_play(index)
        if index in self.fail_on:
            raise PlaybackError("device busy")


def make_scheduler(
    tmp_path: Path,
    backend: Optional[FakeBackend] = None,
    player: Optional[FakePlayer] = None,
    max_chunk_chars: int = 100,
    base_speed: float = 1.0,
) -> SpeechScheduler:
    config = SchedulerConfig(
        max_chunk_chars=max_chunk_chars,
        base_speed=base_speed,
        inter_chunk_pause_s=0.0,
        scratch_dir=str(tmp_path / "scratch"),
    )
    return SpeechScheduler(
        backend or FakeBackend(),
        player or FakePlayer(),
        config,
        artifacts=AudioArtifacts(tmp_path / "scratch"),
    )


def make_config(tmp_path: Path, **scheduler_overrides) -> NarratorConfig:
    values = dict(
        max_chunk_chars=100,
        base_speed=1.0,
        inter_chunk_pause_s=0.0,
        scratch_dir=str(tmp_path / "scratch"),
    )
    values.update(scheduler_overrides)
    return NarratorConfig(scheduler=SchedulerConfig(**values))


def assistant_line(*texts: str, uuid: str = "rec-1", role: str = "assistant", record_type: str = "assistant") -> bytes:
    """One JSONL transcript line with a text item per argument."""
    record = {
        "type": record_type,
        "uuid": uuid,
        "sessionId": "session-1",
        "message": {
            "role": role,
            "content": [{"type": "text", "text": t} for t in texts],
        },
    }
    return (json.dumps(record, ensure_ascii=False) + "\n").encode("utf-8")
