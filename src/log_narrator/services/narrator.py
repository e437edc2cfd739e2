"""
NarratorService - Tail -> Extract -> Speak.

This module provides the NarratorService class, which owns one LogTailer,
one MessageExtractor and one SpeechScheduler and connects them:

    LogTailer --record--> MessageExtractor --utterance--> SpeechScheduler.enqueue

Both the CLI ``watch`` command and the control API go through this class.

Events:
    - utterances: UtteranceExtracted, one per qualifying content item,
      published before the utterance is enqueued
    - settled: TaskSettled, forwarded from the scheduler

Example:
    >>> config = load_settings().get_config()
    >>> service = NarratorService.from_config(config)
    >>> await service.start()        # follows the newest session log
    >>> ...
    >>> await service.stop()
"""
from __future__ import annotations

import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from log_narrator.core.config import NarratorConfig
from log_narrator.core.errors import BackendError
from log_narrator.core.events import Subscribers, TaskSettled, UtteranceExtracted
from log_narrator.core.logging import get_logger, info, success, verbose, warn
from log_narrator.core.metrics import metrics
from log_narrator.speech.backend import SeikaBackend, SpeechBackend, Voice
from log_narrator.speech.playback import AudioArtifacts, AudioPlayer, build_player
from log_narrator.speech.scheduler import SpeakHandle, SpeechScheduler
from log_narrator.utils.text import preview
from log_narrator.watch.extractor import MessageExtractor
from log_narrator.watch.records import LogRecord
from log_narrator.watch.session import resolve_log_path
from log_narrator.watch.tailer import LogTailer

_LOG = get_logger("log-narrator.service")


class NarratorService:
    """
    Wires the tailer, extractor and scheduler for one transcript.

    Args:
        config: Validated configuration.
        backend: TTS backend used by the scheduler.
        player: Audio player used by the scheduler.
        log_path: Explicit transcript path; overrides ``config.tail``.
        artifacts: Scratch file manager; defaults to ``config.scheduler.scratch_dir``.
    """

    def __init__(
        self,
        config: NarratorConfig,
        backend: SpeechBackend,
        player: AudioPlayer,
        log_path: Optional[str | Path] = None,
        artifacts: Optional[AudioArtifacts] = None,
    ):
        self.config = config
        self.backend = backend
        self.extractor = MessageExtractor(config.extract.code_placeholder)
        self.scheduler = SpeechScheduler(
            backend,
            player,
            config.scheduler,
            artifacts=artifacts,
            preview_chars=config.logging.text_preview_chars,
        )
        self.utterances: Subscribers[UtteranceExtracted] = Subscribers("utterance_extracted")
        self.log_path = Path(log_path) if log_path else None
        self._tailer: Optional[LogTailer] = None

    @classmethod
    def from_config(cls, config: NarratorConfig, log_path: Optional[str | Path] = None) -> "NarratorService":
        """Build a service with the Seika backend and the configured player."""
        return cls(config, SeikaBackend(config.backend), build_player(config.playback), log_path=log_path)

    @property
    def settled(self) -> Subscribers[TaskSettled]:
        return self.scheduler.settled

    @property
    def tailer(self) -> Optional[LogTailer]:
        return self._tailer

    def resolve_log_path(self) -> Path:
        """
        Transcript to follow: explicit path, then ``log.file``, then session discovery.

        Raises:
            FilesystemError: Discovery found no transcript.
        """
        if self.log_path is not None:
            return self.log_path
        tail = self.config.tail
        if tail.log_file:
            return Path(tail.log_file).expanduser()
        project_dir = tail.project_dir or os.getcwd()
        return resolve_log_path(project_dir, tail.session_id, tail.projects_root)

    async def start(self) -> Path:
        """
        Start following the transcript. Must run inside the event loop.

        Returns:
            The path being followed.

        Raises:
            FilesystemError: Scratch directory unusable or transcript missing.
        """
        self.scheduler.artifacts.ensure_dir()
        path = self.resolve_log_path()
        self._tailer = LogTailer(
            path,
            on_record=self.handle_record,
            poll_interval_s=self.config.tail.poll_interval_s,
        )
        self._tailer.start()
        success(_LOG, "narrator_started", path=str(path), player=self.scheduler.player.name)
        return path

    async def stop(self) -> None:
        """Stop tailing, cancel pending speech and close the backend. Idempotent."""
        if self._tailer is not None:
            self._tailer.stop()
        await self.scheduler.close()
        await self.backend.aclose()
        info(_LOG, "narrator_stopped")

    def handle_record(self, record: LogRecord) -> List[SpeakHandle]:
        """Extract utterances from one record and enqueue them in content order."""
        handles: List[SpeakHandle] = []
        for utterance in self.extractor.extract(record):
            metrics.record_utterance()
            verbose(
                _LOG, "utterance_extracted",
                record=utterance.record_uuid,
                item=utterance.item_index,
                text=preview(utterance.text, self.config.logging.text_preview_chars),
            )
            self.utterances.publish(
                UtteranceExtracted(
                    text=utterance.text,
                    record_uuid=utterance.record_uuid,
                    item_index=utterance.item_index,
                )
            )
            handles.append(self.scheduler.enqueue(utterance.text))
        return handles

    def speak(self, text: str) -> SpeakHandle:
        """Enqueue text directly, bypassing the tailer."""
        return self.scheduler.enqueue(text)

    async def list_voices(self) -> List[Voice]:
        return await self.backend.list_voices()

    async def get_health_info(self) -> Dict[str, Any]:
        """
        Health snapshot for ``GET /health``.

        The backend is probed with ``health_check()``; a failure marks the
        service degraded but does not raise.
        """
        backend: Dict[str, Any] = {"name": self.backend.name}
        status = "ok"
        try:
            backend["version"] = await self.backend.health_check()
            backend["reachable"] = True
        except BackendError as e:
            status = "degraded"
            backend["reachable"] = False
            backend["error"] = e.message
            warn(_LOG, "backend_unreachable", error=e.message)

        tailer: Dict[str, Any] = {"running": False}
        if self._tailer is not None:
            tailer = {
                "running": self._tailer.running,
                "path": str(self._tailer.path),
                "offset": self._tailer.cursor.byte_offset,
                "pending_bytes": len(self._tailer.cursor.pending_fragment),
            }

        return {
            "ok": True,
            "status": status,
            "backend": backend,
            "scheduler": asdict(self.scheduler.stats()),
            "tailer": tailer,
        }
