"""Presentation adapters: pure functions from cursor state to display data.

WHY: Every front end draws the same three things (the single RSVP word
with its focal letter, the full text with the current word highlighted,
and a progress line) and maps the same keys onto engine operations.
Keeping these as pure functions means the terminal renderer, the HTTP
state endpoint and the tests all agree.

HOW: split_focal() picks the pivot letter; reading_progress() computes
percentage and remaining time at the configured speed; format_eta()
renders prefetch ETAs; highlighted_words() builds the text view model;
handle_key() translates one key press into one engine call.

RULES:
- No function here mutates state except handle_key(), which only calls
  public PlaybackEngine operations
- Seeking keys are ignored while playing (the engine would reject them)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rsvp_reader.core.ir import PlaybackState
from rsvp_reader.playback.engine import PlaybackEngine

SMALL_STEP = 1
LARGE_STEP = 10


def split_focal(word: str) -> tuple[str, str, str]:
    """Split *word* into (prefix, focal letter, suffix) for RSVP display.

    The pivot sits a quarter of the way in, or about a third for long words.
    """
    if not word:
        return "", "", ""
    length = len(word)
    pivot = 1
    if length > 1:
        pivot = int(length * 0.25)
    if length > 7:
        pivot = int(length * 0.35)
    pivot = max(0, min(pivot, length - 1))
    return word[:pivot], word[pivot], word[pivot + 1:]


@dataclass(frozen=True)
class ReadingProgress:
    """Progress bar data."""

    percent: float
    remaining_minutes: int
    remaining_seconds: int

    @property
    def label(self) -> str:
        return "{}m {:02d}s".format(self.remaining_minutes, self.remaining_seconds)


def reading_progress(current_index: int, total_words: int, wpm: int) -> ReadingProgress:
    """Return percent read and time left at *wpm* from *current_index*."""
    if total_words <= 0:
        return ReadingProgress(percent=0.0, remaining_minutes=0, remaining_seconds=0)
    remaining = max(total_words - current_index, 0)
    return ReadingProgress(
        percent=current_index / total_words * 100,
        remaining_minutes=remaining // wpm,
        remaining_seconds=int((remaining % wpm) * 60 / wpm),
    )


def format_eta(eta_seconds: int | None) -> str:
    """Render a prefetch ETA as ``"Xm YYs remaining"``; empty when unknown."""
    if eta_seconds is None:
        return ""
    minutes, seconds = divmod(int(eta_seconds), 60)
    return "{}m {:02d}s remaining".format(minutes, seconds)


def highlighted_words(words: Sequence[str], current_index: int) -> list[tuple[int, str, bool]]:
    """Full-text view model: (index, word, is_current) for every word."""
    return [(index, word, index == current_index) for index, word in enumerate(words)]


def render_rsvp_line(word: str, width: int = 40) -> str:
    """Terminal RSVP line with the focal letter bracketed and kept on a fixed column."""
    prefix, focal, suffix = split_focal(word)
    if not focal:
        return " " * width
    column = width // 2
    left = prefix.rjust(column)[-column:]
    return "{}[{}]{}".format(left, focal, suffix).ljust(width + 2)


def handle_key(engine: PlaybackEngine, key: str, shift: bool = False) -> bool:
    """Map one key press onto an engine operation.

    Keys: "space" toggles play/pause, "escape" stops, "right"/"left" seek
    one word (ten with shift). Returns True when the key was handled.
    """
    if key == "space":
        engine.toggle()
        return True
    if key == "escape":
        engine.stop()
        return True
    if key in ("right", "left"):
        if engine.state == PlaybackState.PLAYING:
            return False
        step = LARGE_STEP if shift else SMALL_STEP
        return engine.seek_by(step if key == "right" else -step)
    return False
