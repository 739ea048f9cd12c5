"""One-word-per-cue SRT exporter.

WHY: An SRT with a single word per cue turns any video player into a
crude RSVP display for the exported WAV.

HOW: Each WordPlacement becomes one numbered cue. Times are formatted as
HH:MM:SS,mmm.

RULES:
- Cue numbering starts at 1 and is contiguous
- Cues are separated by one blank line; file ends with a newline
- Media type: ``application/x-subrip``
"""

from __future__ import annotations

from rsvp_reader.core.ir import Document
from rsvp_reader.core.prefetch import BatchResult
from rsvp_reader.exporters.base import BaseExporter, ExportOutput, word_placements


def seconds_to_srt_time(seconds: float) -> str:
    """Format seconds as an SRT timestamp, e.g. 62.5 → ``00:01:02,500``."""
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


class SrtWordsExporter(BaseExporter):
    """Produces ``-words.srt``."""

    @property
    def name(self) -> str:
        return "Word-by-word SRT"

    def export(self, document: Document, batch: BatchResult) -> list[ExportOutput]:
        cues = []
        for number, placement in enumerate(word_placements(document, batch), start=1):
            cues.append(
                "{}\n{} --> {}\n{}\n".format(
                    number,
                    seconds_to_srt_time(placement.start_s),
                    seconds_to_srt_time(placement.end_s),
                    placement.word,
                )
            )
        return [
            ExportOutput(
                suffix="-words.srt",
                content="\n".join(cues),
                media_type="application/x-subrip",
            )
        ]
