"""Speech synthesis request/response dataclasses and PCM decoding.

WHY: The synthesis service speaks JSON on the wire and returns audio as a
base64 string buried several levels deep in the response. Typed
dataclasses make the request body and the one field we need explicit,
and keep JSON plumbing out of the retry logic.

HOW: SynthesisRequest.to_body() builds the generateContent request with
an AUDIO response modality and a prebuilt voice. SynthesisResponse.from_dict()
digs out the inline audio payload, tolerating missing levels (an absent
payload is a valid-but-failed response, not a parse error). decode_pcm()
turns little-endian int16 bytes into float32 samples.

RULES:
- Missing candidates/parts/inlineData → audio_base64 is None
- decode_pcm divides by 32768 and returns shape (frames, channels)
- A trailing partial frame (odd byte or incomplete channel group) is dropped
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

import numpy as np


@dataclass
class SynthesisRequest:
    """One paragraph synthesis request: voice name plus prompt text."""

    voice: str
    prompt: str

    def to_body(self) -> dict:
        """Build the JSON body for POST /models/{model}:generateContent."""
        return {
            "contents": [{"parts": [{"text": self.prompt}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": self.voice},
                    },
                },
            },
        }


def _object(value: object, what: str) -> dict:
    """Return *value* if it is a JSON object, else raise ValueError."""
    if not isinstance(value, dict):
        raise ValueError("Malformed {} in synthesis response: {!r}".format(what, value)[:200])
    return value


@dataclass
class SynthesisResponse:
    """The parts of a generateContent response the fetcher cares about.

    RULES:
    - audio_base64 is None when the response carries no inline audio
    - mime_type is informational (e.g. "audio/L16;codec=pcm;rate=24000")
    - A body that is not a JSON object, at any level, raises ValueError
    """

    audio_base64: str | None
    mime_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> SynthesisResponse:
        candidates = _object(data, "response").get("candidates") or []
        if not candidates:
            return cls(audio_base64=None)
        if not isinstance(candidates, list):
            raise ValueError("Malformed candidates in synthesis response")
        content = _object(candidates[0], "candidate").get("content") or {}
        parts = _object(content, "content").get("parts") or []
        if not parts:
            return cls(audio_base64=None)
        if not isinstance(parts, list):
            raise ValueError("Malformed parts in synthesis response")
        inline = _object(parts[0], "part").get("inlineData") or {}
        inline = _object(inline, "inlineData")
        return cls(
            audio_base64=inline.get("data"),
            mime_type=inline.get("mimeType"),
        )

    def audio_bytes(self) -> bytes:
        """Decode the base64 payload; an absent payload decodes to b""."""
        if not self.audio_base64:
            return b""
        return base64.b64decode(self.audio_base64)


def decode_pcm(data: bytes, channels: int = 1) -> np.ndarray:
    """Convert interleaved little-endian int16 PCM into float32 samples.

    Args:
        data: Raw PCM bytes.
        channels: Number of interleaved channels.

    Returns:
        Array of shape (frames, channels) with values in [-1, 1).
    """
    frame_bytes = 2 * channels
    usable = len(data) - (len(data) % frame_bytes)
    ints = np.frombuffer(data[:usable], dtype="<i2")
    samples = ints.astype(np.float32) / 32768.0
    return samples.reshape(-1, channels)
