"""
log-narrator: speak an assistant's replies as they are written to its transcript log.

Pipeline:
    LogTailer -> MessageExtractor -> SpeechScheduler -> TTS backend -> player

Entry points:
    - CLI: ``log-narrator watch`` / ``say`` / ``voices`` / ``config``
    - Library: log_narrator.services.NarratorService
"""

__version__ = "0.1.0"
