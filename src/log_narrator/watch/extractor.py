"""
Message Extraction.

Turns LogRecords into UtteranceRequests: plain text the scheduler can speak.

Rules:
    - Only records whose ``type`` is "assistant" and whose message role is
      "assistant" qualify.
    - Each content item of type "text" with non-empty text is masked
      (fenced code removed, see utils/text.py) and emitted as one utterance.
    - Items that are empty after masking are skipped.

The extractor keeps no state between records; the same record always
produces the same utterances.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from log_narrator.core.config import Defaults
from log_narrator.utils.text import mask_code_blocks
from log_narrator.watch.records import LogRecord

ASSISTANT = "assistant"


@dataclass(frozen=True)
class UtteranceRequest:
    """
    Speakable text taken from one content item.

    Attributes:
        text: Masked, trimmed text.
        record_uuid: ``uuid`` of the source record, if present.
        item_index: Position of the content item in the record.
    """
    text: str
    record_uuid: Optional[str] = None
    item_index: int = 0


class MessageExtractor:
    """
    Pure filter from LogRecord to UtteranceRequest.

    Usage:
        extractor = MessageExtractor(code_placeholder="There is a code block.")
        for utterance in extractor.extract(record):
            scheduler.enqueue(utterance.text)
    """

    def __init__(self, code_placeholder: str = Defaults.EXTRACT_CODE_PLACEHOLDER):
        self.code_placeholder = code_placeholder

    def is_assistant_message(self, record: LogRecord) -> bool:
        return (
            record.type == ASSISTANT
            and record.message is not None
            and record.message.role == ASSISTANT
        )

    def extract(self, record: LogRecord) -> List[UtteranceRequest]:
        """Utterances in content order; empty for non-assistant records."""
        if not self.is_assistant_message(record):
            return []

        out: List[UtteranceRequest] = []
        for index, item in enumerate(record.message.items):
            if item.type != "text" or not item.text:
                continue
            text = mask_code_blocks(item.text, self.code_placeholder)
            if text:
                out.append(UtteranceRequest(text=text, record_uuid=record.uuid, item_index=index))
        return out
