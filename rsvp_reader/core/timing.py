"""Heuristic per-word timing inside a paragraph audio clip.

WHY: The remote voice returns one audio clip per paragraph and no word
alignment. To move the reading cursor in step with the audio we need an
estimate of when each word is spoken. Longer words take longer; words
followed by punctuation carry a pause.

HOW: Each word gets a weight (length + 2, plus 3 when it ends in
punctuation). The clip duration is apportioned proportionally to weight,
start times are the running sum, and the last word's end is pinned to the
clip duration so accumulated floating-point error never leaks past the
end of the clip.

RULES:
- weight(word) = len(word) + 2 (+3 if word ends in . , ; ! ? :)
- Zero total weight (no words) → empty timing list
- Intervals are contiguous: timings[i].end_s == timings[i + 1].start_s
- timings[0].start_s == 0.0 and timings[-1].end_s == duration exactly
- locate_timing() returns the interval containing the elapsed time
"""

from __future__ import annotations

import bisect
from collections.abc import Sequence

from rsvp_reader.core.ir import WordTiming

_PAUSE_PUNCTUATION = frozenset(".,;!?:")
_BASE_WEIGHT = 2
_PUNCTUATION_BONUS = 3


def word_weight(word: str) -> int:
    """Return the timing weight of a single word."""
    weight = len(word) + _BASE_WEIGHT
    if word and word[-1] in _PAUSE_PUNCTUATION:
        weight += _PUNCTUATION_BONUS
    return weight


def estimate_timings(words: Sequence[str], duration_s: float) -> list[WordTiming]:
    """Apportion *duration_s* across *words* by weight.

    Args:
        words: The paragraph's words, in order (as produced by the tokenizer).
        duration_s: Real duration of the paragraph's audio clip in seconds.

    Returns:
        One WordTiming per word, partitioning [0, duration_s].
    """
    weights = [word_weight(w) for w in words]
    total_weight = sum(weights)
    if total_weight == 0:
        return []

    timings: list[WordTiming] = []
    accumulated = 0.0
    last = len(weights) - 1
    for position, weight in enumerate(weights):
        start = accumulated
        accumulated += (weight / total_weight) * duration_s
        end = duration_s if position == last else accumulated
        timings.append(WordTiming(position=position, start_s=start, end_s=end))
    return timings


def locate_timing(
    timings: Sequence[WordTiming],
    elapsed_s: float,
    starts: Sequence[float] | None = None,
) -> int | None:
    """Return the position of the timing whose [start, end) contains *elapsed_s*.

    Timings are sorted and non-overlapping, so a binary search on start
    times replaces a linear scan. Callers polling every frame pass the
    precomputed *starts* list. Returns None before the first word or at or
    after the end of the clip.
    """
    if not timings or elapsed_s < timings[0].start_s:
        return None
    if starts is None:
        starts = [t.start_s for t in timings]
    i = bisect.bisect_right(starts, elapsed_s) - 1
    if i >= 0 and timings[i].contains(elapsed_s):
        return i
    return None
