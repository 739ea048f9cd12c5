"""Data model shared by the segmenter, estimator, fetcher, and playback engine.

WHY: The same handful of structures flows through every stage: a segmented
document, per-word timings inside a paragraph clip, decoded per-paragraph
audio, and the single cursor that the playback engine owns. Typed
dataclasses keep the stages decoupled and make the invariants explicit.

HOW: Five types form the model:
  Document      — words, paragraphs and paragraph start indices (immutable)
  WordTiming    — one word's [start, end) interval inside its paragraph clip
  AudioItem     — decoded samples plus timings for one paragraph
  PlaybackState — stopped / playing / paused
  CursorState   — the authoritative "current word" state

RULES:
- Words are identified only by their 0-based position in Document.words
- paragraph_starts is non-decreasing, one entry per paragraph, first is 0
- WordTiming offsets are seconds relative to the paragraph clip start
- AudioItem.samples is float32 with shape (frames, channels)
- CursorState is only ever mutated by the playback engine
"""

from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class Document:
    """Segmented text for one session.

    Built once per text submission by ``segment()``; never mutated.
    """

    words: tuple[str, ...] = ()
    paragraphs: tuple[str, ...] = ()
    paragraph_starts: tuple[int, ...] = ()

    @property
    def word_count(self) -> int:
        return len(self.words)

    @property
    def paragraph_count(self) -> int:
        return len(self.paragraphs)

    def paragraph_words(self, paragraph_index: int) -> tuple[str, ...]:
        """Return the words of one paragraph as a slice of the global sequence."""
        start = self.paragraph_starts[paragraph_index]
        if paragraph_index + 1 < len(self.paragraph_starts):
            end = self.paragraph_starts[paragraph_index + 1]
        else:
            end = len(self.words)
        return self.words[start:end]

    def paragraph_of(self, word_index: int) -> int:
        """Return the paragraph whose start is the greatest start <= word_index."""
        if not self.paragraph_starts:
            return 0
        return max(bisect.bisect_right(self.paragraph_starts, word_index) - 1, 0)

    def word_at(self, index: int) -> str:
        """Return the word at *index*, or an empty string outside the document."""
        if 0 <= index < len(self.words):
            return self.words[index]
        return ""


@dataclass(frozen=True)
class WordTiming:
    """Estimated interval of one word inside its paragraph's audio clip."""

    position: int
    start_s: float
    end_s: float

    def contains(self, elapsed_s: float) -> bool:
        return self.start_s <= elapsed_s < self.end_s


@dataclass
class AudioItem:
    """Decoded audio for one paragraph, paired with its word timings.

    WHY: The remote-voice path plays paragraph clips one after another and
    maps the audio clock back to words through ``timings``.

    RULES:
    - samples: float32 in [-1, 1], shape (frames, channels)
    - timings partition [0, duration_s] exactly
    - A paragraph whose synthesis failed is represented by None, not by
      an empty AudioItem
    """

    samples: np.ndarray
    sample_rate: int
    timings: list[WordTiming] = field(default_factory=list)

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1]) if self.samples.ndim > 1 else 1

    @property
    def duration_s(self) -> float:
        return self.frames / float(self.sample_rate)


class PlaybackState(str, enum.Enum):
    """Playback lifecycle: stopped → playing ⇄ paused → stopped."""

    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass
class CursorState:
    """The single authoritative playback cursor of a session.

    RULES:
    - seeked_while_paused distinguishes a bare resume (False) from a cold
      start at a user-chosen word (True) on the next play()
    """

    playback_state: PlaybackState = PlaybackState.STOPPED
    current_word_index: int = 0
    current_paragraph_index: int = 0
    seeked_while_paused: bool = False


@dataclass(frozen=True)
class CursorSnapshot:
    """Read-only view of the cursor handed to renderers and listeners."""

    playback_state: PlaybackState
    current_word_index: int
    current_paragraph_index: int
    seeked_while_paused: bool
    previous_word: str
    current_word: str
    next_word: str
    word_count: int
