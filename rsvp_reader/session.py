"""Reader session: one document, one voice configuration, one engine.

WHY: Front ends (CLI, HTTP API) need a single object that owns the text,
the settings, the prepared audio and the playback engine, and that knows
when prepared audio has gone stale. Keeping that lifecycle here leaves
the engine a pure state machine and the front ends thin.

HOW: set_text() segments the text and loads it into the engine.
update_settings() validates and stores voice / WPM / engine kind /
concurrency. Any change to text or settings invalidates prepared audio.
preprocess() prepares the active voice: for the remote voice it runs the
bounded prefetch and attaches a ClipTimingSource over the results; for
the local voice it attaches an UtteranceTimingSource.

RULES:
- Missing credentials raise ConfigurationError before any network call
- Zero successful paragraphs raise BatchFailedError and leave audio not ready
- A preprocess overtaken by a text/settings change is discarded
- Exports require a completed remote preprocess
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from rsvp_reader.api.client import SpeechClient
from rsvp_reader.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_VOICE,
    DEFAULT_WPM,
    ENGINE_KINDS,
    ConfigurationError,
    validate_voice,
    validate_wpm,
)
from rsvp_reader.core.ir import Document
from rsvp_reader.core.prefetch import BatchResult, ProgressFn, prefetch_all
from rsvp_reader.core.segmenter import segment
from rsvp_reader.exporters import EXPORTERS
from rsvp_reader.exporters.base import ExportOutput
from rsvp_reader.playback.audio import AudioOutput, PygameAudioOutput
from rsvp_reader.playback.engine import ChangeFn, NoticeFn, PlaybackEngine
from rsvp_reader.playback.sources import ClipTimingSource, UtteranceTimingSource
from rsvp_reader.playback.speech import Pyttsx3SpeechEngine, SpeechEngine

logger = logging.getLogger(__name__)

READY_MESSAGE = "Audio processed. Ready to play."
LOCAL_READY_MESSAGE = "Local voice ready."
STALE_MESSAGE = "Text or settings changed while processing; audio discarded."


def failure_message(failed_count: int) -> str:
    """User notice for a partially failed batch."""
    return "{} paragraph(s) failed and were skipped.".format(failed_count)


@dataclass
class PreprocessReport:
    """Summary of one preprocess run, for front ends to display."""

    paragraphs: int
    failed_count: int
    message: str
    ready: bool = True


class ReaderSession:
    """Text, settings, prepared audio and playback for one reader.

    Args:
        engine_kind: "remote" (synthesis service) or "local" (system voice).
        voice: Remote voice name.
        wpm: Reading speed in words per minute.
        concurrency: Prefetch worker count.
        client_factory: Builds a SpeechClient (tests pass a stubbed one).
        audio_factory: Builds the AudioOutput used by the remote path.
        speech_factory: Builds the SpeechEngine used by the local path.
        on_change / on_notice: Forwarded to the PlaybackEngine.
    """

    def __init__(
        self,
        engine_kind: str = "remote",
        voice: str = DEFAULT_VOICE,
        wpm: int = DEFAULT_WPM,
        concurrency: int = DEFAULT_CONCURRENCY,
        client_factory: Callable[[], SpeechClient] = SpeechClient,
        audio_factory: Callable[[], AudioOutput] = PygameAudioOutput,
        speech_factory: Callable[[], SpeechEngine] = Pyttsx3SpeechEngine,
        on_change: ChangeFn | None = None,
        on_notice: NoticeFn | None = None,
    ) -> None:
        self.engine_kind = self._validate_engine_kind(engine_kind)
        self.voice = validate_voice(voice)
        self.wpm = validate_wpm(wpm)
        self.concurrency = self._validate_concurrency(concurrency)
        self._client_factory = client_factory
        self._audio_factory = audio_factory
        self._speech_factory = speech_factory
        self._audio_output: AudioOutput | None = None
        self._speech: SpeechEngine | None = None
        self._text = ""
        self._batch: BatchResult | None = None
        self._generation = 0
        self.engine = PlaybackEngine(on_change=on_change, on_notice=on_notice)

    # ------------------------------------------------------------------
    # Text and settings
    # ------------------------------------------------------------------

    @property
    def text(self) -> str:
        return self._text

    @property
    def document(self) -> Document:
        return self.engine.document

    @property
    def batch(self) -> BatchResult | None:
        return self._batch

    @property
    def is_audio_ready(self) -> bool:
        return self.engine.is_ready

    def set_text(self, text: str) -> Document:
        """Segment *text* and load it; prepared audio is discarded."""
        self._text = text
        self.invalidate()
        document = segment(text)
        self.engine.load(document)
        logger.info(
            "Loaded text: %d word(s) in %d paragraph(s)",
            document.word_count, document.paragraph_count,
        )
        return document

    def update_settings(
        self,
        engine_kind: str | None = None,
        voice: str | None = None,
        wpm: int | None = None,
        concurrency: int | None = None,
    ) -> bool:
        """Apply new settings. Returns True when anything changed.

        All values are validated before any is applied.
        """
        new_kind = self.engine_kind if engine_kind is None else self._validate_engine_kind(engine_kind)
        new_voice = self.voice if voice is None else validate_voice(voice)
        new_wpm = self.wpm if wpm is None else validate_wpm(wpm)
        new_concurrency = (
            self.concurrency if concurrency is None else self._validate_concurrency(concurrency)
        )

        audio_changed = (new_kind, new_voice, new_wpm) != (self.engine_kind, self.voice, self.wpm)
        changed = audio_changed or new_concurrency != self.concurrency

        self.engine_kind = new_kind
        self.voice = new_voice
        self.wpm = new_wpm
        self.concurrency = new_concurrency
        if audio_changed:
            logger.debug("Voice settings changed; prepared audio discarded")
            self.invalidate()
        return changed

    def invalidate(self) -> None:
        """Mark audio as not ready and drop the prepared clips."""
        self._generation += 1
        self.engine.detach_source()
        self._batch = None

    # ------------------------------------------------------------------
    # Preprocess
    # ------------------------------------------------------------------

    def new_client(self) -> SpeechClient:
        """Build a synthesis client; raises ConfigurationError without credentials."""
        return self._client_factory()

    async def preprocess(
        self,
        on_progress: ProgressFn | None = None,
        client: SpeechClient | None = None,
    ) -> PreprocessReport:
        """Prepare the active voice for the current document.

        Raises:
            ValueError: No text loaded.
            ConfigurationError: Remote voice without credentials.
            BatchFailedError: No paragraph could be synthesized.
        """
        document = self.document
        if document.word_count == 0:
            raise ValueError("Enter some text before processing audio.")

        # Credentials are checked before anything about playback changes
        if self.engine_kind == "remote" and client is None:
            client = self.new_client()

        self.invalidate()
        generation = self._generation

        if self.engine_kind == "local":
            if self._speech is None:
                self._speech = self._speech_factory()
            self.engine.attach_source(
                UtteranceTimingSource(document, self._speech, self.wpm)
            )
            return PreprocessReport(
                paragraphs=document.paragraph_count,
                failed_count=0,
                message=LOCAL_READY_MESSAGE,
            )

        wpm, voice = self.wpm, self.voice
        logger.info(
            "Processing %d paragraph(s) with voice %s at %d wpm",
            document.paragraph_count, voice, wpm,
        )
        async with client:
            batch = await prefetch_all(
                document.paragraphs,
                lambda text: client.fetch_paragraph_audio(text, wpm, voice),
                concurrency=self.concurrency,
                on_progress=on_progress,
            )

        if generation != self._generation:
            logger.warning("Discarding audio prepared for outdated text or settings")
            return PreprocessReport(
                paragraphs=len(batch.items),
                failed_count=batch.failed_count,
                message=STALE_MESSAGE,
                ready=False,
            )

        batch.raise_for_failure()

        if self._audio_output is None:
            self._audio_output = self._audio_factory()
        self._batch = batch
        self.engine.attach_source(ClipTimingSource(document, batch.items, self._audio_output))

        if batch.failed_count:
            message = failure_message(batch.failed_count)
        else:
            message = READY_MESSAGE
        return PreprocessReport(
            paragraphs=len(batch.items),
            failed_count=batch.failed_count,
            message=message,
        )

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------

    def export(self, key: str) -> list[ExportOutput]:
        """Render one registered export of the prepared batch.

        Raises:
            KeyError: Unknown export key.
            LookupError: No remote audio has been prepared.
        """
        if key not in EXPORTERS:
            raise KeyError(key)
        if self._batch is None:
            raise LookupError("No processed audio to export.")
        return EXPORTERS[key]().export(self.document, self._batch)

    def close(self) -> None:
        """Stop playback and release the audio device."""
        self.engine.stop()
        self.engine.detach_source()

    @staticmethod
    def _validate_engine_kind(kind: str) -> str:
        if kind not in ENGINE_KINDS:
            raise ConfigurationError(
                "Unknown engine '{}'. Available: {}".format(kind, ", ".join(ENGINE_KINDS))
            )
        return kind

    @staticmethod
    def _validate_concurrency(concurrency: int) -> int:
        if concurrency < 1:
            raise ConfigurationError("Concurrency must be at least 1 (got {}).".format(concurrency))
        return concurrency
