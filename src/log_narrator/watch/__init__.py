"""
Log watching: tail the transcript, parse records, extract utterances.

    - records.py: LogRecord schema and line parser
    - tailer.py: Incremental tailer with partial-line recovery
    - extractor.py: Assistant text -> UtteranceRequest
    - session.py: Transcript discovery by project and session id
"""
from .extractor import MessageExtractor, UtteranceRequest
from .records import ContentItem, LogRecord, Message, parse_record
from .session import encode_project_dir, resolve_log_path
from .tailer import LogCursor, LogTailer

__all__ = [
    "ContentItem",
    "LogCursor",
    "LogRecord",
    "LogTailer",
    "Message",
    "MessageExtractor",
    "UtteranceRequest",
    "encode_project_dir",
    "parse_record",
    "resolve_log_path",
]
