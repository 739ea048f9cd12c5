"""Shared test fixtures and fakes for the rsvp_reader test suite.

WHY: The playback engine talks to an audio device and a speech engine,
and the fetcher talks to a remote service. Tests need all three to be
deterministic, instant and inspectable.

HOW: FakeAudioOutput has a manual clock that only advances while not
paused; FakeSpeechEngine records utterances and lets tests fire boundary,
end and error callbacks by hand; RecordingListener logs TimingListener
events. Helpers build PCM payloads and service responses.

RULES:
- No test touches the network, a sound card or a system voice
- Backoff delays go through no_sleep (records delays, never waits)
- The two-paragraph sample article is the default document
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np
import pytest

from rsvp_reader.core.ir import AudioItem
from rsvp_reader.core.timing import estimate_timings
from rsvp_reader.playback.audio import AudioOutput
from rsvp_reader.playback.sources import TimingListener
from rsvp_reader.playback.speech import SpeechEngine

SAMPLE_RATE = 24000

SAMPLE_TEXT = "Uno dos. tres\n\nCuatro cinco, seis siete."


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


class FakeAudioOutput(AudioOutput):
    """AudioOutput with a manual clock.

    ``tick`` seconds are added on every clock() read while a clip is
    playing, so a synchronization loop driven with a zero frame interval
    walks through a clip deterministically.
    """

    def __init__(self, tick: float = 0.0) -> None:
        self.tick = tick
        self.now = 0.0
        self.plays: List[tuple] = []
        self.paused = False
        self.stop_calls = 0
        self._clip_end: Optional[float] = None

    def play(self, samples, sample_rate, offset_s=0.0):  # noqa: ANN001
        self.plays.append((samples, sample_rate, offset_s))
        self.paused = False
        self._clip_end = self.now + samples.shape[0] / sample_rate - offset_s

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def stop(self):
        self.stop_calls += 1
        self.paused = False
        self._clip_end = None

    def clock(self):
        if self._clip_end is not None and not self.paused:
            self.now += self.tick
        return self.now

    @property
    def finished(self):
        if self._clip_end is None:
            return True
        if self.paused:
            return False
        return self.now >= self._clip_end

    @property
    def offsets(self) -> List[float]:
        return [offset for _, _, offset in self.plays]


def make_item(words, duration_s: float = 1.0, sample_rate: int = SAMPLE_RATE) -> AudioItem:
    """AudioItem of silence with timings estimated for *words*."""
    frames = int(round(duration_s * sample_rate))
    samples = np.zeros((frames, 1), dtype=np.float32)
    return AudioItem(
        samples=samples,
        sample_rate=sample_rate,
        timings=estimate_timings(list(words), duration_s),
    )


def pcm_base64(frames: int, value: int = 1000) -> str:
    """Base64 of *frames* little-endian int16 samples."""
    return base64.b64encode(np.full(frames, value, dtype="<i2").tobytes()).decode("ascii")


def service_response(data: Optional[str]) -> dict:
    """A generateContent response body carrying *data* as inline audio."""
    if data is None:
        return {"candidates": []}
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"inlineData": {"mimeType": "audio/L16;codec=pcm;rate=24000", "data": data}}
                    ]
                }
            }
        ]
    }


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------


@dataclass
class FakeUtterance:
    text: str
    rate: int
    on_boundary: Callable[[int], None]
    on_end: Callable[[], None]
    on_error: Callable[[str], None]

    def boundary_at_word(self, n: int) -> None:
        """Fire a boundary at the start of the n-th word of this utterance."""
        offset = 0
        words = self.text.split(" ")
        for word in words[:n]:
            offset += len(word) + 1
        self.on_boundary(offset)


class FakeSpeechEngine(SpeechEngine):
    """Records utterances; tests fire their callbacks manually."""

    def __init__(self, supports_pause: bool = False) -> None:
        self.supports_pause = supports_pause
        self.utterances: List[FakeUtterance] = []
        self.cancel_calls = 0
        self.pause_calls = 0
        self.resume_calls = 0

    def speak(self, text, rate_wpm, on_boundary, on_end, on_error):  # noqa: ANN001
        self.utterances.append(FakeUtterance(text, rate_wpm, on_boundary, on_end, on_error))

    def cancel(self):
        self.cancel_calls += 1

    def pause(self):
        self.pause_calls += 1

    def resume(self):
        self.resume_calls += 1

    @property
    def last(self) -> FakeUtterance:
        return self.utterances[-1]


# ---------------------------------------------------------------------------
# Listener
# ---------------------------------------------------------------------------


class RecordingListener(TimingListener):
    """Collects TimingListener events as tuples."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def paragraph_started(self, paragraph_index):
        self.events.append(("paragraph", paragraph_index))

    def word_changed(self, word_index, paragraph_index):
        self.events.append(("word", word_index, paragraph_index))

    def finished(self):
        self.events.append(("finished",))

    def failed(self, message):
        self.events.append(("failed", message))

    def of(self, kind: str) -> List[tuple]:
        return [e for e in self.events if e[0] == kind]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def no_sleep():
    """Async sleeper that records requested delays without waiting."""
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def audio_output():
    return FakeAudioOutput()


@pytest.fixture
def speech_engine():
    return FakeSpeechEngine()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def api_key_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    return "test-key"


@pytest.fixture
def no_api_key_env(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
