"""
TTS Backend Clients.

This module provides:
    - SpeechBackend: Base class every backend implements
    - Voice: One voice offered by a backend
    - SeikaBackend: HTTP client for an AssistantSeika-compatible server

AssistantSeika API (HTTP Basic auth on every request):
    POST /SAVE2/{cid}   {"talktext": str, "effects": {...}, "emotions": {...}}
                        -> WAV bytes
    GET  /AVATOR2       -> [{"cid": 60041, "name": "..."}, ...]
    GET  /VERSION       -> version string

Any non-200 answer raises BackendError carrying the status and body; timeouts
and connection failures raise BackendError with no status.

Implementing a New Backend:
    1. Inherit from SpeechBackend
    2. Implement synthesize(), list_voices() and health_check()
    3. Release connections in aclose()
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from log_narrator.core.config import BackendConfig
from log_narrator.core.errors import BackendError
from log_narrator.core.logging import get_logger, verbose, warn

_LOG = get_logger("log-narrator.backend")

# Longest response body kept on a BackendError
_BODY_LIMIT = 500


@dataclass(frozen=True)
class Voice:
    """A voice the backend can speak with."""
    id: int
    display_name: str


class SpeechBackend:
    """
    Base class for TTS backends.

    All methods are coroutines; implementations must raise BackendError for
    every failure so the scheduler can treat it as a skipped chunk.
    """
    name: str = "base"

    async def synthesize(
        self,
        text: str,
        effects: Optional[Dict[str, float]] = None,
        emotions: Optional[Dict[str, float]] = None,
    ) -> bytes:
        """
        Render ``text`` to audio.

        Args:
            text: Chunk text.
            effects: Effect parameters merged over the configured ones
                (e.g. ``{"speed": 1.4}``).
            emotions: Emotion weights; the configured ones when omitted.

        Returns:
            Encoded audio (WAV).
        """
        raise NotImplementedError

    async def list_voices(self) -> List[Voice]:
        raise NotImplementedError

    async def health_check(self) -> str:
        """Return the backend version string."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class SeikaBackend(SpeechBackend):
    """
    AssistantSeika HTTP client.

    Usage:
        backend = SeikaBackend(config.backend)
        audio = await backend.synthesize("Hello.", effects={"speed": 1.2})
        await backend.aclose()
    """
    name = "seika"

    def __init__(self, config: BackendConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                auth=httpx.BasicAuth(self.config.username, self.config.password),
                timeout=httpx.Timeout(self.config.timeout_s),
                transport=self._transport,
            )
        return self._client

    async def synthesize(
        self,
        text: str,
        effects: Optional[Dict[str, float]] = None,
        emotions: Optional[Dict[str, float]] = None,
    ) -> bytes:
        body = {
            "talktext": text,
            "effects": {**self.config.effects, **(effects or {})},
            "emotions": dict(self.config.emotions if emotions is None else emotions),
        }
        response = await self._request(
            "POST",
            f"/SAVE2/{self.config.cid}",
            json=body,
            headers={"Accept": "audio/wav"},
        )
        verbose(_LOG, "synthesized", chars=len(text), bytes=len(response.content), cid=self.config.cid)
        return response.content

    async def list_voices(self) -> List[Voice]:
        response = await self._request("GET", "/AVATOR2")
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError("voice list is not valid JSON", status=response.status_code, body=_clip(response.text)) from e

        if not isinstance(data, list):
            raise BackendError("voice list is not a JSON array", status=response.status_code, body=_clip(response.text))

        voices: List[Voice] = []
        for entry in data:
            voice = _voice_from_entry(entry)
            if voice is None:
                warn(_LOG, "voice_entry_ignored", entry=str(entry)[:80])
                continue
            voices.append(voice)
        return voices

    async def health_check(self) -> str:
        response = await self._request("GET", "/VERSION")
        return response.text.strip().strip('"')

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendError(f"{method} {path} timed out after {self.config.timeout_s}s") from e
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e

        if response.status_code != 200:
            raise BackendError(
                f"{method} {path} returned HTTP {response.status_code}",
                status=response.status_code,
                body=_clip(response.text),
            )
        return response


def _voice_from_entry(entry: Any) -> Optional[Voice]:
    if not isinstance(entry, dict):
        return None
    cid = entry.get("cid")
    name = entry.get("name")
    if cid is None or name is None:
        return None
    try:
        return Voice(id=int(cid), display_name=str(name))
    except (TypeError, ValueError):
        return None


def _clip(text: str) -> str:
    return text if len(text) <= _BODY_LIMIT else text[:_BODY_LIMIT] + "..."
