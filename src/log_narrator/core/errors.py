"""
Error Taxonomy for log-narrator.

Every failure the pipeline can report derives from NarratorError, which
carries a stable error code and a ``to_dict()`` payload shared by the CLI
(``--json``) and the control API.

Propagation policy:
    - ParseError: one malformed log line. Logged, line skipped, tailing continues.
    - BackendError: non-success HTTP status or transport failure talking to the
      TTS backend. Raised to the caller of the backend operation; the scheduler
      treats it as "chunk skipped".
    - PlaybackError: the audio player failed. Logged, chunk skipped.
    - FilesystemError: a precondition on disk failed (log file missing,
      scratch directory unusable). Always propagates.
    - InvalidInputError: caller passed unusable input (e.g. blank text).
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Stable error codes used in error payloads."""
    PARSE_ERROR = "PARSE_ERROR"
    BACKEND_ERROR = "BACKEND_ERROR"
    PLAYBACK_ERROR = "PLAYBACK_ERROR"
    FILESYSTEM_ERROR = "FILESYSTEM_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class NarratorError(Exception):
    """
    Base exception for log-narrator errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional additional context.
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Standard error payload."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ParseError(NarratorError):
    """A log line could not be decoded into a record."""

    def __init__(self, message: str, line_number: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if line_number is not None:
            details["line"] = line_number
        super().__init__(message, ErrorCode.PARSE_ERROR, details)
        self.line_number = line_number


class BackendError(NarratorError):
    """
    The TTS backend answered with a non-success status or could not be reached.

    Attributes:
        status: HTTP status code, or None for transport failures.
        body: Response body (truncated), if any.
    """

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        details: Dict[str, Any] = {}
        if status is not None:
            details["status"] = status
        if body:
            details["body"] = body
        super().__init__(message, ErrorCode.BACKEND_ERROR, details)
        self.status = status
        self.body = body


class PlaybackError(NarratorError):
    """The audio player failed or no player is available."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PLAYBACK_ERROR, details)


class FilesystemError(NarratorError):
    """A required file or directory is missing or inaccessible."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, ErrorCode.FILESYSTEM_ERROR, {"path": path} if path else None)
        self.path = path


class InvalidInputError(NarratorError):
    """Caller supplied unusable input."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)
