"""
Log Record Schema.

Each line of the tailed transcript is a self-contained JSON object. Only a
handful of fields matter for narration; everything else is ignored so the
schema survives new fields being added by the writer.

Example line (abridged):
    {"type": "assistant", "uuid": "9b1...", "sessionId": "34c3...",
     "message": {"role": "assistant",
                 "content": [{"type": "text", "text": "Done. The tests pass."}]}}

User records often carry ``content`` as a plain string; that form is
accepted and exposes no content items.
"""
from __future__ import annotations

import json
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from log_narrator.core.errors import ParseError


class ContentItem(BaseModel):
    """One entry of ``message.content``."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = ""
    text: Optional[str] = None


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    role: Optional[str] = None
    content: Union[List[ContentItem], str] = Field(default_factory=list)

    @property
    def items(self) -> List[ContentItem]:
        """Content items in order; empty for string content."""
        if isinstance(self.content, str):
            return []
        return list(self.content)


class LogRecord(BaseModel):
    """A parsed transcript line. Immutable once parsed."""
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    type: str = ""
    uuid: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    timestamp: Optional[str] = None
    message: Optional[Message] = None


def parse_record(line: Union[bytes, str], line_number: Optional[int] = None) -> LogRecord:
    """
    Decode one log line into a LogRecord.

    Args:
        line: Raw line without the trailing newline.
        line_number: Position in the current read, for error reporting.

    Raises:
        ParseError: Invalid UTF-8, invalid JSON, or JSON that is not a
            record object.
    """
    try:
        text = line.decode("utf-8") if isinstance(line, bytes) else line
        data = json.loads(text)
    except UnicodeDecodeError as e:
        raise ParseError(f"log line is not valid UTF-8: {e}", line_number) from e
    except json.JSONDecodeError as e:
        raise ParseError(f"log line is not valid JSON: {e.msg}", line_number, {"column": e.colno}) from e
    except (ValueError, RecursionError) as e:
        # Oversized integers and very deep nesting
        raise ParseError(f"log line cannot be decoded: {type(e).__name__}", line_number) from e

    if not isinstance(data, dict):
        raise ParseError(f"log line is JSON {type(data).__name__}, expected an object", line_number)

    try:
        return LogRecord.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"log line does not match the record schema: {e.error_count()} error(s)", line_number) from e
