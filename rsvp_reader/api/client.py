"""Async HTTP client for the remote speech synthesis service.

WHY: The remote-voice path needs one audio clip per paragraph, decoded
into samples and paired with estimated word timings. Synthesis calls fail
transiently (empty payloads, network hiccups), and one bad paragraph must
not sink a whole article. This module encapsulates the HTTP details and
the per-paragraph retry policy behind a single client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. The SpeechClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. synthesize() performs one request;
fetch_paragraph_audio() wraps it with the speed directive, retries with
linear backoff, PCM decoding, and timing estimation.

RULES:
- Always use the async context manager (async with SpeechClient(...) as client:)
- Empty paragraph text → None immediately, no request is made
- Empty audio payload → retry after 0.5s × attempt number
- Request error → retry after 1.0s × attempt number
- After max_retries + 1 attempts → None (a paragraph failure, not an exception)
- Never touches session or cursor state
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from rsvp_reader.api.models import SynthesisRequest, SynthesisResponse, decode_pcm
from rsvp_reader.config import (
    DEFAULT_MAX_RETRIES,
    TTS_BASE_URL,
    TTS_CHANNELS,
    TTS_MODEL,
    TTS_SAMPLE_RATE,
    load_api_key,
    speed_directive,
)
from rsvp_reader.core.ir import AudioItem
from rsvp_reader.core.segmenter import tokenize
from rsvp_reader.core.timing import estimate_timings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMPTY_PAYLOAD_BACKOFF_S = 0.5
_ERROR_BACKOFF_S = 1.0
_LOG_SNIPPET_CHARS = 30


class SpeechAPIError(Exception):
    """Raised when the synthesis service returns an error response.

    Wraps the HTTP status code and response body. The fetcher treats it
    as a transient failure and retries.
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Speech API error {status_code}: {message}")


class SpeechClient:
    """Async client for the remote speech synthesis service.

    WHY: Provides a clean, typed interface for paragraph synthesis. Handles
    auth, request building, retry/backoff, and decoding.

    HOW: Wraps httpx.AsyncClient with the API key header. Use as an async
    context manager to ensure the HTTP connection pool is properly closed.

    RULES:
    - api_key defaults to load_api_key() from .env (raises ConfigurationError
      before any network call when missing)
    - base_url / model default to TTS_BASE_URL / TTS_MODEL from config
    - sleep is injectable so tests can skip real backoff delays
    - transport is injectable so tests can stub the service
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        sample_rate: int = TTS_SAMPLE_RATE,
        channels: int = TTS_CHANNELS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or TTS_BASE_URL).rstrip("/")
        self._model = model or TTS_MODEL
        self._sample_rate = sample_rate
        self._channels = channels
        self._sleep = sleep
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SpeechClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(120.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "SpeechClient must be used as an async context manager: "
                "async with SpeechClient() as client: ..."
            )
        return self._client

    async def synthesize(self, prompt: str, voice: str) -> SynthesisResponse:
        """Request speech for *prompt* in *voice* and return the parsed response.

        Raises SpeechAPIError on non-2xx responses, httpx.HTTPError on
        transport failures and ValueError on a body that is not the expected
        JSON object. An empty or missing payload is returned as-is.
        """
        client = self._ensure_client()
        request = SynthesisRequest(voice=voice, prompt=prompt)
        resp = await client.post(
            f"/models/{self._model}:generateContent",
            json=request.to_body(),
        )
        if resp.status_code != 200:
            raise SpeechAPIError(resp.status_code, resp.text)
        return SynthesisResponse.from_dict(resp.json())

    async def fetch_paragraph_audio(
        self,
        text: str,
        wpm: int,
        voice: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> AudioItem | None:
        """Synthesize one paragraph and pair the clip with word timings.

        WHY: This is the unit of work of the batch prefetch scheduler. It
        must never raise for service-side failures; it returns None so the
        scheduler can record a paragraph failure and move on.

        HOW: Prefixes the speed directive, then tries up to max_retries + 1
        times. Empty payloads and request errors back off linearly. On
        success the payload is decoded to samples and the estimator is run
        against the real clip duration.

        Args:
            text: The paragraph text, as segmented.
            wpm: Target reading speed; selects the speed directive.
            voice: Remote voice name.
            max_retries: Extra attempts after the first one.

        Returns:
            An AudioItem, or None when the text is blank or every attempt failed.
        """
        if not text.strip():
            logger.debug("Skipping empty paragraph for synthesis")
            return None

        prompt = f"{speed_directive(wpm)} {text}".strip()
        snippet = text[:_LOG_SNIPPET_CHARS]
        attempts = max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                response = await self.synthesize(prompt, voice)
                audio = response.audio_bytes()
            except (httpx.HTTPError, SpeechAPIError, ValueError) as exc:
                logger.warning(
                    "Synthesis error (attempt %d/%d) for paragraph %r...: %s",
                    attempt, attempts, snippet, exc,
                )
                if attempt < attempts:
                    await self._sleep(_ERROR_BACKOFF_S * attempt)
                continue

            samples = decode_pcm(audio, self._channels)
            if samples.shape[0] == 0:
                logger.warning(
                    "Empty audio payload (attempt %d/%d) for paragraph %r...",
                    attempt, attempts, snippet,
                )
                if attempt < attempts:
                    await self._sleep(_EMPTY_PAYLOAD_BACKOFF_S * attempt)
                continue

            item = AudioItem(samples=samples, sample_rate=self._sample_rate)
            item.timings = estimate_timings(tokenize(text), item.duration_s)
            return item

        logger.error(
            "Giving up on paragraph %r... after %d attempts", snippet, attempts
        )
        return None
