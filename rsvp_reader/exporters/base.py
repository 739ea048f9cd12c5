"""Abstract base exporter and output container.

WHY: A prepared session can be saved in several shapes: the spoken audio
itself and word-level timing sidecars for reuse in other tools. Each
shape reads the same inputs (the segmented document and the prefetch
batch), so a shared interface lets the CLI and the HTTP API treat every
export generically.

HOW: BaseExporter is an ABC with a ``name`` property and an ``export()``
method. ExportOutput bundles a file suffix with its content and MIME type.
word_placements() walks the batch once and yields every word in the time
base of the concatenated export clip, for the timing exporters to share.

RULES:
- ``export()`` returns a list; single-file exporters return one item
- ``suffix`` starts with a hyphen, e.g. ``"-audio.wav"``
- The caller prepends the source filename stem
- Failed paragraphs (None items) contribute nothing and shift nothing
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass

from rsvp_reader.core.ir import Document
from rsvp_reader.core.prefetch import BatchResult


@dataclass
class ExportOutput:
    """One output file produced by an exporter.

    Attributes:
        suffix: File suffix appended to the source stem,
                e.g. ``"-audio.wav"`` → ``"article-audio.wav"``.
        content: Text (JSON, SRT) or bytes (WAV).
        media_type: MIME type for the content.
    """

    suffix: str
    content: str | bytes
    media_type: str


@dataclass(frozen=True)
class WordPlacement:
    """One spoken word positioned on the export clip's timeline."""

    index: int
    paragraph: int
    word: str
    start_s: float
    end_s: float


def word_placements(document: Document, batch: BatchResult) -> Iterator[WordPlacement]:
    """Yield every spoken word with start/end in concatenated-clip time.

    Each successful paragraph's timings are shifted by the total duration
    of the successful paragraphs before it.
    """
    offset = 0.0
    for paragraph, item in enumerate(batch.items):
        if item is None:
            continue
        start = document.paragraph_starts[paragraph]
        for timing in item.timings:
            index = start + timing.position
            yield WordPlacement(
                index=index,
                paragraph=paragraph,
                word=document.word_at(index),
                start_s=offset + timing.start_s,
                end_s=offset + timing.end_s,
            )
        offset += item.duration_s


class BaseExporter(ABC):
    """Abstract base for all exporters.

    To add a new export:
    1. Create a new file in exporters/
    2. Subclass BaseExporter
    3. Implement export() and name
    4. Register in EXPORTERS in exporters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable export name, e.g. 'WAV audio'."""

    @abstractmethod
    def export(self, document: Document, batch: BatchResult) -> list[ExportOutput]:
        """Render the prepared session into one or more files.

        Args:
            document: The segmented document the batch was built from.
            batch: The prefetch result (items, failures, export clip).

        Returns:
            List of ExportOutput objects.
        """
