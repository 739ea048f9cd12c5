"""Speech synthesis client package — async HTTP interface to the remote voice.

WHY: The remote-voice path needs per-paragraph audio from a generative
speech service. This package encapsulates all service communication
behind an async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. SpeechClient provides
one-shot synthesis and the retrying per-paragraph fetch. Request/response
shapes and PCM decoding live in models.py.

RULES:
- All HTTP calls go through SpeechClient (no direct httpx usage elsewhere)
- Authentication is via API key header from config
"""

from rsvp_reader.api.client import SpeechAPIError, SpeechClient
from rsvp_reader.api.models import SynthesisRequest, SynthesisResponse, decode_pcm

__all__ = [
    "SpeechAPIError",
    "SpeechClient",
    "SynthesisRequest",
    "SynthesisResponse",
    "decode_pcm",
]
