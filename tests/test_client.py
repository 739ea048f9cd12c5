"""Tests for the speech synthesis client and per-paragraph retry policy.

HOW: httpx.MockTransport stands in for the service; backoff delays go
through the no_sleep fixture so retries are instant and inspectable.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import numpy as np
import pytest

from rsvp_reader.api.client import SpeechAPIError, SpeechClient
from rsvp_reader.api.models import SynthesisRequest, SynthesisResponse, decode_pcm
from rsvp_reader.config import ConfigurationError

from conftest import pcm_base64, service_response


def _client(handler, sleep, **kwargs) -> SpeechClient:
    return SpeechClient(
        api_key="test-key",
        base_url="https://tts.example/v1beta",
        model="test-model",
        sleep=sleep,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def _fetch(client: SpeechClient, text: str, wpm: int = 350, voice: str = "Kore"):
    async with client:
        return await client.fetch_paragraph_audio(text, wpm, voice)


class TestModels:
    def test_request_body(self):
        body = SynthesisRequest(voice="Puck", prompt="Hola").to_body()
        assert body["contents"][0]["parts"][0]["text"] == "Hola"
        config = body["generationConfig"]
        assert config["responseModalities"] == ["AUDIO"]
        assert config["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Puck"

    def test_response_missing_levels(self):
        assert SynthesisResponse.from_dict({}).audio_base64 is None
        assert SynthesisResponse.from_dict({"candidates": [{}]}).audio_base64 is None
        assert SynthesisResponse.from_dict(
            {"candidates": [{"content": {"parts": []}}]}
        ).audio_bytes() == b""

    def test_response_wrong_shape_raises_value_error(self):
        for body in (["x"], "text", {"candidates": {"0": {}}}, {"candidates": [{"content": "x"}]}):
            with pytest.raises(ValueError):
                SynthesisResponse.from_dict(body)

    def test_decode_pcm_scale_and_shape(self):
        data = np.array([0, 16384, -32768, 32767], dtype="<i2").tobytes()
        samples = decode_pcm(data)
        assert samples.shape == (4, 1)
        assert samples.dtype == np.float32
        assert samples[1, 0] == pytest.approx(0.5)
        assert samples[2, 0] == -1.0

    def test_decode_pcm_drops_partial_frame(self):
        assert decode_pcm(b"\x00\x01\x02").shape == (1, 1)
        assert decode_pcm(b"\x00" * 6, channels=2).shape == (1, 2)


class TestSynthesize:
    def test_request_shape(self, no_sleep):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=service_response(pcm_base64(2400)))

        asyncio.run(_fetch(_client(handler, no_sleep), "Hola mundo", wpm=500, voice="Charon"))

        assert seen["url"] == "https://tts.example/v1beta/models/test-model:generateContent"
        assert seen["key"] == "test-key"
        text = seen["body"]["contents"][0]["parts"][0]["text"]
        assert text == "Habla muy rápidamente: Hola mundo"

    def test_no_directive_at_normal_speed(self, no_sleep):
        seen = {}

        def handler(request):
            seen["text"] = json.loads(request.content)["contents"][0]["parts"][0]["text"]
            return httpx.Response(200, json=service_response(pcm_base64(10)))

        asyncio.run(_fetch(_client(handler, no_sleep), "Hola", wpm=200))
        assert seen["text"] == "Hola"

    def test_error_status_raises(self, no_sleep):
        def handler(request):
            return httpx.Response(500, text="boom")

        async def run():
            async with _client(handler, no_sleep) as client:
                await client.synthesize("Hola", "Kore")

        with pytest.raises(SpeechAPIError) as info:
            asyncio.run(run())
        assert info.value.status_code == 500

    def test_requires_context_manager(self, no_sleep):
        client = _client(lambda r: httpx.Response(200), no_sleep)
        with pytest.raises(RuntimeError):
            asyncio.run(client.synthesize("Hola", "Kore"))

    def test_missing_key_raises_before_request(self, no_api_key_env):
        with pytest.raises(ConfigurationError):
            SpeechClient()


class TestFetchParagraphAudio:
    """fetch_paragraph_audio() retry/backoff and result shape."""

    def test_success_builds_item_with_timings(self, no_sleep):
        def handler(request):
            return httpx.Response(200, json=service_response(pcm_base64(24000)))

        item = asyncio.run(_fetch(_client(handler, no_sleep), "Uno dos. tres"))

        assert item is not None
        assert item.sample_rate == 24000
        assert item.samples.shape == (24000, 1)
        assert item.duration_s == pytest.approx(1.0)
        assert len(item.timings) == 3
        assert item.timings[-1].end_s == pytest.approx(1.0)
        assert no_sleep.delays == []

    def test_blank_text_makes_no_request(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=service_response(pcm_base64(10)))

        assert asyncio.run(_fetch(_client(handler, no_sleep), "   ")) is None
        assert calls == []

    def test_empty_payload_retries_with_half_second_backoff(self, no_sleep):
        responses = [service_response(None), service_response(""), service_response(pcm_base64(240))]

        def handler(request):
            return httpx.Response(200, json=responses.pop(0))

        item = asyncio.run(_fetch(_client(handler, no_sleep), "Hola"))
        assert item is not None
        assert no_sleep.delays == [0.5, 1.0]

    def test_request_errors_retry_with_one_second_backoff(self, no_sleep):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("down", request=request)
            return httpx.Response(200, json=service_response(pcm_base64(240)))

        item = asyncio.run(_fetch(_client(handler, no_sleep), "Hola"))
        assert item is not None
        assert len(attempts) == 3
        assert no_sleep.delays == [1.0, 2.0]

    def test_exhausted_retries_return_none(self, no_sleep):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(503, text="unavailable")

        assert asyncio.run(_fetch(_client(handler, no_sleep), "Hola")) is None
        assert len(attempts) == 3
        # No sleep after the final attempt
        assert no_sleep.delays == [1.0, 2.0]

    def test_max_retries_zero_single_attempt(self, no_sleep):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(200, json=service_response(None))

        async def run():
            async with _client(handler, no_sleep) as client:
                return await client.fetch_paragraph_audio("Hola", 350, "Kore", max_retries=0)

        assert asyncio.run(run()) is None
        assert len(attempts) == 1
        assert no_sleep.delays == []

    def test_invalid_base64_is_retried(self, no_sleep):
        responses = [service_response("!!not base64!!"), service_response(pcm_base64(240))]

        def handler(request):
            return httpx.Response(200, json=responses.pop(0))

        item = asyncio.run(_fetch(_client(handler, no_sleep), "Hola"))
        assert item is not None
        assert no_sleep.delays == [1.0]

    def test_non_json_body_is_retried(self, no_sleep):
        responses = [
            httpx.Response(200, text="<html>gateway hiccup</html>"),
            httpx.Response(200, json=service_response(pcm_base64(240))),
        ]

        def handler(request):
            return responses.pop(0)

        item = asyncio.run(_fetch(_client(handler, no_sleep), "Hola"))
        assert item is not None
        assert responses == []
        assert no_sleep.delays == [1.0]

    def test_malformed_json_shape_is_retried(self, no_sleep):
        responses = [
            httpx.Response(200, json=["not", "an", "object"]),
            httpx.Response(200, json={"candidates": ["oops"]}),
            httpx.Response(200, json=service_response(pcm_base64(240))),
        ]

        def handler(request):
            return responses.pop(0)

        item = asyncio.run(_fetch(_client(handler, no_sleep), "Hola"))
        assert item is not None
        assert no_sleep.delays == [1.0, 2.0]
