"""Timing sources: the two ways of knowing which word is being spoken.

WHY: The remote voice gives us finished audio clips and nothing else, so
word progress must be derived from the audio clock and estimated word
timings, every frame. The local voice streams by itself and tells us
where it is through boundary events. The playback engine must not care
which of the two is active, so both implement one interface and report
progress through the same listener channel.

HOW:
  TimingListener        — the event channel (implemented by the engine)
  TimingSource          — start(paragraph, word) / pause / resume / stop
  ClipTimingSource      — remote path: one asyncio task plays paragraph
                          clips in order and polls the audio clock each frame
  UtteranceTimingSource — local path: one utterance per paragraph slice,
                          boundary events mapped back to global word indices

RULES:
- At most one synchronization task / one utterance is ever active; start()
  and stop() cancel whatever is running first
- Paragraph chaining is an explicit loop driven by "paragraph finished",
  never recursion
- Paragraphs without audio (failed synthesis) or with nothing left to say
  are skipped without touching the cursor
- word_changed is only emitted when the word actually changes
- Callbacks from a cancelled utterance are ignored (utterance ids)
- "interrupted"/"canceled" engine errors are expected noise, not failures
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from rsvp_reader.core.ir import AudioItem, Document
from rsvp_reader.core.segmenter import count_words
from rsvp_reader.core.timing import locate_timing
from rsvp_reader.playback.audio import AudioOutput
from rsvp_reader.playback.speech import SELF_INDUCED_ERRORS, SpeechEngine

logger = logging.getLogger(__name__)

FRAME_INTERVAL_S = 1 / 60


class TimingListener(ABC):
    """Receives progress events from a TimingSource."""

    @abstractmethod
    def paragraph_started(self, paragraph_index: int) -> None:
        """A paragraph's audio or utterance began."""

    @abstractmethod
    def word_changed(self, word_index: int, paragraph_index: int) -> None:
        """The word being spoken changed to global index *word_index*."""

    @abstractmethod
    def finished(self) -> None:
        """The last paragraph ended naturally."""

    @abstractmethod
    def failed(self, message: str) -> None:
        """Playback hit an unrecoverable error."""


class TimingSource(ABC):
    """Common interface of both timing variants."""

    def __init__(self, document: Document) -> None:
        self._document = document
        self._listener: TimingListener | None = None

    def bind(self, listener: TimingListener) -> None:
        self._listener = listener

    @property
    def listener(self) -> TimingListener:
        if self._listener is None:
            raise RuntimeError("TimingSource used before bind()")
        return self._listener

    @property
    @abstractmethod
    def ready(self) -> bool:
        """True when start() can produce audio."""

    @abstractmethod
    def start(self, paragraph_index: int, word_in_paragraph: int) -> None:
        """Cold start at a word, cancelling anything already running."""

    @abstractmethod
    def pause(self) -> None:
        """Suspend in place."""

    @abstractmethod
    def resume(self) -> None:
        """Continue exactly where pause() left off."""

    @abstractmethod
    def stop(self) -> None:
        """Cancel everything and release the underlying audio."""


# ---------------------------------------------------------------------------
# Remote voice: clock-driven
# ---------------------------------------------------------------------------


class ClipTimingSource(TimingSource):
    """Plays prefetched paragraph clips and tracks words against the audio clock.

    WHY: Remote clips carry no word events; the current word is the one whose
    estimated interval contains the elapsed clip time.

    HOW: start() computes the intra-paragraph offset from the target word's
    timing and launches one task. The task plays each paragraph clip in
    order, polling once per frame until the clip ends, then moves to the
    next. Pausing clears an event the task waits on, so no frame work
    happens while paused.

    RULES:
    - elapsed = (clock - clip start clock) × playback rate
    - A None item is skipped (no silence, no cursor change)
    - Past the last paragraph the listener is told finished()
    """

    def __init__(
        self,
        document: Document,
        items: Sequence[AudioItem | None],
        output: AudioOutput,
        frame_interval: float = FRAME_INTERVAL_S,
    ) -> None:
        super().__init__(document)
        self._items = list(items)
        self._starts = [
            [t.start_s for t in item.timings] if item is not None else []
            for item in self._items
        ]
        self._output = output
        self._frame_interval = frame_interval
        self._task: asyncio.Task | None = None
        self._running = asyncio.Event()
        self._paragraph = 0
        self._clip_start_clock = 0.0
        self._last_word: int | None = None

    @property
    def ready(self) -> bool:
        return any(item is not None for item in self._items)

    @property
    def items(self) -> list[AudioItem | None]:
        return list(self._items)

    def start_offset(self, paragraph_index: int, word_in_paragraph: int) -> float:
        """Clip offset (seconds) at which *word_in_paragraph* starts."""
        if paragraph_index >= len(self._items):
            return 0.0
        item = self._items[paragraph_index]
        if item is None or word_in_paragraph >= len(item.timings):
            return 0.0
        return item.timings[word_in_paragraph].start_s

    def start(self, paragraph_index: int, word_in_paragraph: int) -> None:
        self._cancel_task()
        self._output.stop()

        item = self._items[paragraph_index] if paragraph_index < len(self._items) else None
        if item is not None and item.timings and word_in_paragraph >= len(item.timings):
            logger.debug(
                "Word %d is past the end of paragraph %d; starting the next one",
                word_in_paragraph, paragraph_index,
            )
            paragraph_index += 1
            offset = 0.0
        else:
            offset = self.start_offset(paragraph_index, word_in_paragraph)

        self._running.set()
        self._task = asyncio.get_running_loop().create_task(
            self._drive(paragraph_index, offset)
        )

    async def _drive(self, paragraph_index: int, offset: float) -> None:
        try:
            p = paragraph_index
            while p < len(self._items):
                item = self._items[p]
                if item is None:
                    logger.debug("Paragraph %d has no audio; skipping", p)
                    p += 1
                    offset = 0.0
                    continue

                self._paragraph = p
                self._last_word = None
                self.listener.paragraph_started(p)
                # A pause that lands before the clip starts holds it back
                await self._running.wait()
                self._output.play(item.samples, item.sample_rate, offset)
                self._clip_start_clock = self._output.clock() - offset

                while True:
                    await self._running.wait()
                    if self._output.finished:
                        break
                    self.poll()
                    await asyncio.sleep(self._frame_interval)

                p += 1
                offset = 0.0

            self._task = None
            self.listener.finished()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Audio playback failed in paragraph %d", self._paragraph)
            self._task = None
            self.listener.failed("Audio playback failed: {}".format(exc))

    def poll(self) -> int | None:
        """Map the audio clock to a word; emit word_changed only on change."""
        item = self._items[self._paragraph]
        if item is None:
            return None
        elapsed = (self._output.clock() - self._clip_start_clock) * self._output.playback_rate
        position = locate_timing(item.timings, elapsed, self._starts[self._paragraph])
        if position is None:
            return None
        word_index = self._document.paragraph_starts[self._paragraph] + position
        if word_index != self._last_word:
            self._last_word = word_index
            self.listener.word_changed(word_index, self._paragraph)
        return word_index

    def pause(self) -> None:
        self._output.pause()
        self._running.clear()

    def resume(self) -> None:
        self._output.resume()
        self._running.set()

    def stop(self) -> None:
        self._cancel_task()
        self._output.stop()
        self._running.set()
        self._last_word = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()


# ---------------------------------------------------------------------------
# Local voice: boundary-event driven
# ---------------------------------------------------------------------------


class UtteranceTimingSource(TimingSource):
    """Speaks paragraph slices on a local engine and maps boundary events to words.

    WHY: The local engine knows exactly where it is, but only as a character
    offset into whatever text we handed it, which may start mid-paragraph
    after a seek.

    HOW: Each utterance covers the remaining words of one paragraph joined
    by spaces. A boundary's word offset is the count of word matches before
    the character offset; adding the slice start and the paragraph's global
    start gives the global index. The end of an utterance starts the next
    paragraph.

    RULES:
    - Every new utterance gets a fresh id; events carrying an old id are dropped
    - Engines without native pause: pause cancels, resume restarts from the
      current word
    """

    def __init__(self, document: Document, speech: SpeechEngine, rate_wpm: int) -> None:
        super().__init__(document)
        self._speech = speech
        self._rate = rate_wpm
        self._utterance_id = 0
        self._paragraph = 0
        self._slice_start = 0
        self._current_word = 0
        self._suspended = False

    @property
    def ready(self) -> bool:
        return self._document.word_count > 0

    def start(self, paragraph_index: int, word_in_paragraph: int) -> None:
        self._cancel()
        self._suspended = False
        self._speak_from(paragraph_index, word_in_paragraph)

    def _speak_from(self, paragraph_index: int, word_in_paragraph: int) -> None:
        document = self._document
        p, w = paragraph_index, word_in_paragraph
        while p < document.paragraph_count:
            remaining = document.paragraph_words(p)[w:]
            if remaining:
                break
            logger.debug("Paragraph %d has nothing left to speak; moving on", p)
            p, w = p + 1, 0
        else:
            self.listener.finished()
            return

        self._utterance_id += 1
        uid = self._utterance_id
        self._paragraph = p
        self._slice_start = w
        self._current_word = document.paragraph_starts[p] + w
        text = " ".join(remaining)

        self.listener.paragraph_started(p)
        self.listener.word_changed(self._current_word, p)
        self._speech.speak(
            text,
            self._rate,
            on_boundary=lambda char_index: self._on_boundary(uid, text, char_index),
            on_end=lambda: self._on_end(uid),
            on_error=lambda code: self._on_error(uid, code),
        )

    def _on_boundary(self, uid: int, text: str, char_index: int) -> None:
        if uid != self._utterance_id:
            return
        relative = count_words(text[:char_index])
        word_index = (
            self._document.paragraph_starts[self._paragraph] + self._slice_start + relative
        )
        word_index = min(word_index, self._document.word_count - 1)
        if word_index != self._current_word:
            self._current_word = word_index
            self.listener.word_changed(word_index, self._paragraph)

    def _on_end(self, uid: int) -> None:
        if uid != self._utterance_id:
            return
        self._speak_from(self._paragraph + 1, 0)

    def _on_error(self, uid: int, code: str) -> None:
        if uid != self._utterance_id or code in SELF_INDUCED_ERRORS:
            logger.debug("Ignoring speech event %r from utterance %d", code, uid)
            return
        self._utterance_id += 1
        self.listener.failed("Speech engine error: {}.".format(code))

    def pause(self) -> None:
        if self._speech.supports_pause:
            self._speech.pause()
            return
        self._cancel()
        self._suspended = True

    def resume(self) -> None:
        if self._speech.supports_pause:
            self._speech.resume()
            return
        if self._suspended:
            self._suspended = False
            start = self._document.paragraph_starts[self._paragraph]
            self._speak_from(self._paragraph, self._current_word - start)

    def stop(self) -> None:
        self._cancel()
        self._suspended = False

    def _cancel(self) -> None:
        self._utterance_id += 1
        self._speech.cancel()
