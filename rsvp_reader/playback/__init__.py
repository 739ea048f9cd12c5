"""Playback package: the cursor state machine and its timing sources.

HOW: engine.py owns the cursor; sources.py maps audio progress to words;
audio.py and speech.py wrap the output devices.
"""

from rsvp_reader.playback.engine import NOT_READY_NOTICE, PlaybackEngine
from rsvp_reader.playback.sources import (
    ClipTimingSource,
    TimingListener,
    TimingSource,
    UtteranceTimingSource,
)

__all__ = [
    "NOT_READY_NOTICE",
    "ClipTimingSource",
    "PlaybackEngine",
    "TimingListener",
    "TimingSource",
    "UtteranceTimingSource",
]
