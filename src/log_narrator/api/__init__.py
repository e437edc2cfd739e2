"""
log-narrator Control API.

    - routes.py: /health, /v1/speak, /v1/voices, /metrics
    - schemas.py: Pydantic request/response models
"""
from .routes import router
from .schemas import SpeakRequest, SpeakResponse, VoiceInfo, VoicesResponse

__all__ = [
    "router",
    "SpeakRequest",
    "SpeakResponse",
    "VoiceInfo",
    "VoicesResponse",
]
