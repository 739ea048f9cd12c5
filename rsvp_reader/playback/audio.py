"""Audio output boundary for the remote-voice path.

WHY: The synchronization loop needs three things from the audio device:
start a clip at an offset, suspend/resume it, and read a clock that
freezes while suspended. Hiding the device behind a small interface keeps
the loop testable with a fake clock and lets the device library change.

HOW: AudioOutput is an ABC. PygameAudioOutput plays int16 buffers through
pygame.mixer and keeps its own monotonic clock that stops advancing while
paused, mirroring an audio context that is suspended.

RULES:
- clock() is monotonic and does not advance while paused
- finished is True once the current clip has played to its end (never
  while paused); it is also True when nothing has been started
- stop() is idempotent and safe when nothing is playing
- playback_rate scales clip time against clock time (1.0 = normal)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import numpy as np

logger = logging.getLogger(__name__)


class AudioOutput(ABC):
    """Minimal audio device interface used by ClipTimingSource."""

    playback_rate: float = 1.0

    @abstractmethod
    def play(self, samples: np.ndarray, sample_rate: int, offset_s: float = 0.0) -> None:
        """Start playing *samples* from *offset_s*, replacing any current clip."""

    @abstractmethod
    def pause(self) -> None:
        """Suspend playback; the clock stops."""

    @abstractmethod
    def resume(self) -> None:
        """Continue a paused clip; the clock runs again."""

    @abstractmethod
    def stop(self) -> None:
        """Stop and release the current clip, if any."""

    @abstractmethod
    def clock(self) -> float:
        """Current audio clock time in seconds."""

    @property
    @abstractmethod
    def finished(self) -> bool:
        """True when the current clip reached its natural end."""


def to_int16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples in [-1, 1] to int16, clipping out-of-range values."""
    clipped = np.clip(samples, -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype(np.int16)


class PygameAudioOutput(AudioOutput):
    """AudioOutput backed by pygame.mixer.

    The mixer is (re)initialized lazily for the sample rate and channel
    count of each clip, so importing this module never opens a device.
    """

    def __init__(self) -> None:
        self._mixer_format: tuple[int, int] | None = None
        self._channel = None
        self._paused_at: float | None = None
        self._paused_total = 0.0

    def _ensure_mixer(self, sample_rate: int, channels: int) -> None:
        import pygame

        wanted = (sample_rate, channels)
        if self._mixer_format == wanted:
            return
        if self._mixer_format is not None:
            pygame.mixer.quit()
        pygame.mixer.init(frequency=sample_rate, size=-16, channels=channels)
        self._mixer_format = wanted
        logger.debug("Mixer initialized at %d Hz, %d channel(s)", sample_rate, channels)

    def play(self, samples: np.ndarray, sample_rate: int, offset_s: float = 0.0) -> None:
        import pygame

        self.stop()
        channels = int(samples.shape[1]) if samples.ndim > 1 else 1
        self._ensure_mixer(sample_rate, channels)
        start_frame = max(0, int(round(offset_s * sample_rate)))
        pcm = to_int16(samples[start_frame:])
        sound = pygame.mixer.Sound(buffer=pcm.tobytes())
        self._channel = sound.play()

    def pause(self) -> None:
        import pygame

        if self._channel is None or self._paused_at is not None:
            return
        pygame.mixer.pause()
        self._paused_at = time.monotonic()

    def resume(self) -> None:
        import pygame

        if self._paused_at is None:
            return
        pygame.mixer.unpause()
        self._paused_total += time.monotonic() - self._paused_at
        self._paused_at = None

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()
            self._channel = None
        if self._paused_at is not None:
            self._paused_total += time.monotonic() - self._paused_at
            self._paused_at = None

    def clock(self) -> float:
        now = self._paused_at if self._paused_at is not None else time.monotonic()
        return now - self._paused_total

    @property
    def finished(self) -> bool:
        if self._channel is None:
            return True
        if self._paused_at is not None:
            return False
        return not self._channel.get_busy()
