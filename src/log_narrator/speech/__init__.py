"""
Speech output: segmentation, scheduling, synthesis and playback.

    - segmenter.py: Bounded-length chunking
    - scheduler.py: FIFO speak tasks with pacing and preemption
    - backend.py: TTS backend clients (AssistantSeika over HTTP)
    - playback.py: Audio players and scoped temp files
"""
from .backend import SeikaBackend, SpeechBackend, Voice
from .playback import AudioArtifacts, AudioPlayer, CommandPlayer, DefaultPlayer, build_player
from .scheduler import SchedulerStats, SpeakHandle, SpeakTask, SpeechScheduler, compute_speed_override
from .segmenter import Chunk, segment, split_text

__all__ = [
    "AudioArtifacts",
    "AudioPlayer",
    "Chunk",
    "CommandPlayer",
    "DefaultPlayer",
    "SchedulerStats",
    "SeikaBackend",
    "SpeakHandle",
    "SpeakTask",
    "SpeechBackend",
    "SpeechScheduler",
    "Voice",
    "build_player",
    "compute_speed_override",
    "segment",
    "split_text",
]
