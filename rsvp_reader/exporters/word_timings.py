"""Word-timings exporter: JSON sidecar for the WAV export.

WHY: The estimated timings are what make the audio followable word by
word. Saving them next to the WAV lets other players (or a later session)
drive an RSVP view without re-estimating.

HOW: Walks word_placements() and serializes one record per word, plus a
small header describing the clip and the failures.

RULES:
- Times are seconds on the concatenated clip (same base as the WAV)
- Words of failed paragraphs are omitted
- Output is UTF-8 JSON with non-ASCII characters kept as-is
"""

from __future__ import annotations

import json

from rsvp_reader.core.ir import Document
from rsvp_reader.core.prefetch import BatchResult
from rsvp_reader.exporters.base import BaseExporter, ExportOutput, word_placements


class WordTimingsExporter(BaseExporter):
    """Produces ``-word-timings.json``."""

    def __init__(self, precision: int = 3) -> None:
        self.precision = precision

    @property
    def name(self) -> str:
        return "Word timings JSON"

    def export(self, document: Document, batch: BatchResult) -> list[ExportOutput]:
        clip = batch.clip
        words = [
            {
                "index": placement.index,
                "paragraph": placement.paragraph,
                "word": placement.word,
                "start": round(placement.start_s, self.precision),
                "end": round(placement.end_s, self.precision),
            }
            for placement in word_placements(document, batch)
        ]
        payload = {
            "sample_rate": clip.sample_rate if clip is not None else None,
            "duration": round(clip.duration_s, self.precision) if clip is not None else 0.0,
            "paragraphs": len(batch.items),
            "failed_paragraphs": [
                index for index, item in enumerate(batch.items) if item is None
            ],
            "words": words,
        }
        return [
            ExportOutput(
                suffix="-word-timings.json",
                content=json.dumps(payload, ensure_ascii=False, indent=2),
                media_type="application/json",
            )
        ]
