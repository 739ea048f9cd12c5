"""WAV exporter: the spoken article as one 16-bit PCM file.

WHY: Listeners want to keep the generated narration, and the remote clips
already exist in memory after a prefetch, so saving them costs nothing.

HOW: The export clip (all successful paragraphs concatenated in order) is
written with soundfile into an in-memory buffer as PCM_16. soundfile does
the float → int16 conversion and writes the RIFF header.

RULES:
- One file: ``-audio.wav``, media type ``audio/wav``
- Sample rate and channel count come from the export clip
- No export clip (nothing succeeded) → ValueError
"""

from __future__ import annotations

import io

import soundfile as sf

from rsvp_reader.core.ir import Document
from rsvp_reader.core.prefetch import BatchResult
from rsvp_reader.exporters.base import BaseExporter, ExportOutput


class WavExporter(BaseExporter):
    """Writes the concatenated export clip as a WAV file."""

    @property
    def name(self) -> str:
        return "WAV audio"

    def export(self, document: Document, batch: BatchResult) -> list[ExportOutput]:
        clip = batch.clip
        if clip is None:
            raise ValueError("No audio to export: no paragraph was synthesized.")

        buffer = io.BytesIO()
        sf.write(buffer, clip.samples, clip.sample_rate, format="WAV", subtype="PCM_16")
        return [
            ExportOutput(
                suffix="-audio.wav",
                content=buffer.getvalue(),
                media_type="audio/wav",
            )
        ]
