"""
log-narrator Services Layer.

Orchestration between the watch layer (tailer, extractor) and the speech
layer (scheduler, backend, player). Used by the CLI and the control API.

Components:
    - narrator.py: NarratorService
"""
from .narrator import NarratorService

__all__ = ["NarratorService"]
