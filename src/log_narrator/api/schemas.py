"""
Control API Request/Response Schemas.

Models:
    SpeakRequest: Body of POST /v1/speak
    SpeakResponse: Enqueue acknowledgement, plus the outcome when ``wait`` is set
    VoiceInfo / VoicesResponse: GET /v1/voices

Example Request:
    {"text": "Deployment finished.", "wait": true}
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

# Upper bound for one spoken request; longer text is still segmented normally
MAX_SPEAK_CHARS = 10_000


class SpeakRequest(BaseModel):
    """
    Text to speak through the narrator's scheduler.

    Attributes:
        text: Text to speak. Blank text is rejected with INVALID_INPUT.
        wait: Hold the response until the task settles and report its outcome.
    """
    text: str = Field(
        ...,
        min_length=1,
        max_length=MAX_SPEAK_CHARS,
        description="Text to speak",
    )
    wait: bool = Field(
        default=False,
        description="Wait for the task to finish before responding",
    )


class SpeakResponse(BaseModel):
    ok: bool = True
    task_id: int
    speed_override: Optional[float] = None
    outcome: Optional[str] = None
    chunks_total: Optional[int] = None
    chunks_played: Optional[int] = None
    chunks_skipped: Optional[int] = None
    chunks_discarded: Optional[int] = None


class VoiceInfo(BaseModel):
    id: int
    name: str


class VoicesResponse(BaseModel):
    ok: bool = True
    voices: List[VoiceInfo]
