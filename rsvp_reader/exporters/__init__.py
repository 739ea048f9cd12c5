"""Exporter registry — pluggable output hub.

WHY: The CLI and API layers need a single lookup to find an exporter by
name. Adding a format means writing the class and adding one line here.

HOW: EXPORTERS maps string keys to exporter *classes* (not instances).
Callers instantiate as needed: ``exporter = EXPORTERS["wav"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and URLs)
- Values are BaseExporter subclasses (not instances)
- Every exporter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rsvp_reader.exporters.srt_words import SrtWordsExporter
from rsvp_reader.exporters.wav import WavExporter
from rsvp_reader.exporters.word_timings import WordTimingsExporter

if TYPE_CHECKING:
    from rsvp_reader.exporters.base import BaseExporter

EXPORTERS: dict[str, type[BaseExporter]] = {
    "wav": WavExporter,
    "word_timings": WordTimingsExporter,
    "srt_words": SrtWordsExporter,
}
