"""Local speech engine boundary for the local-voice path.

WHY: The local voice streams natively and reports its own progress as
boundary events carrying a character offset into the text being spoken.
The timing source only needs speak/cancel (and pause/resume where the
engine supports them) plus three callbacks, so the engine library sits
behind a small interface.

HOW: SpeechEngine is an ABC. Pyttsx3SpeechEngine runs pyttsx3's blocking
runAndWait() on a dedicated single worker thread and marshals its
"started-word" and "finished-utterance" callbacks back onto the asyncio
loop that called speak().

RULES:
- Callbacks are always delivered on the event loop thread
- on_error("interrupted") is reported for utterances we cancelled ourselves
- cancel() is safe to call when nothing is being spoken
- Engines without native pause set supports_pause = False; callers then
  emulate pause by cancelling and restarting from the current word
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

logger = logging.getLogger(__name__)

BoundaryFn = Callable[[int], None]
EndFn = Callable[[], None]
ErrorFn = Callable[[str], None]

INTERRUPTED = "interrupted"
CANCELED = "canceled"
SELF_INDUCED_ERRORS = frozenset({INTERRUPTED, CANCELED})


class SpeechEngine(ABC):
    """Imperative local text-to-speech engine with asynchronous events."""

    supports_pause: bool = False

    @abstractmethod
    def speak(
        self,
        text: str,
        rate_wpm: int,
        on_boundary: BoundaryFn,
        on_end: EndFn,
        on_error: ErrorFn,
    ) -> None:
        """Start speaking *text*; returns immediately."""

    @abstractmethod
    def cancel(self) -> None:
        """Abort the current utterance, if any."""

    def pause(self) -> None:
        raise NotImplementedError("{} cannot pause".format(type(self).__name__))

    def resume(self) -> None:
        raise NotImplementedError("{} cannot resume".format(type(self).__name__))


class Pyttsx3SpeechEngine(SpeechEngine):
    """SpeechEngine backed by pyttsx3 (system voices).

    pyttsx3 has no pause, so supports_pause stays False. The engine object
    is created lazily on the worker thread that drives it.
    """

    supports_pause = False

    def __init__(self, voice_id: str | None = None) -> None:
        self._voice_id = voice_id
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pyttsx3")
        self._engine: Any = None
        self._lock = threading.Lock()
        self._generation = 0

    def _get_engine(self) -> Any:
        """Lazy load the pyttsx3 engine (worker thread only)."""
        if self._engine is None:
            import pyttsx3

            self._engine = pyttsx3.init()
            if self._voice_id:
                self._engine.setProperty("voice", self._voice_id)
        return self._engine

    def speak(
        self,
        text: str,
        rate_wpm: int,
        on_boundary: BoundaryFn,
        on_end: EndFn,
        on_error: ErrorFn,
    ) -> None:
        loop = asyncio.get_running_loop()
        with self._lock:
            self._generation += 1
            generation = self._generation
        self._executor.submit(
            self._run, loop, generation, text, rate_wpm, on_boundary, on_end, on_error
        )

    def _run(
        self,
        loop: asyncio.AbstractEventLoop,
        generation: int,
        text: str,
        rate_wpm: int,
        on_boundary: BoundaryFn,
        on_end: EndFn,
        on_error: ErrorFn,
    ) -> None:
        with self._lock:
            if generation != self._generation:
                loop.call_soon_threadsafe(on_error, CANCELED)
                return

        try:
            engine = self._get_engine()
        except Exception as exc:
            logger.exception("Could not start the local speech engine")
            loop.call_soon_threadsafe(on_error, str(exc))
            return

        def _on_word(name, location, length):  # noqa: ANN001
            loop.call_soon_threadsafe(on_boundary, location)

        def _on_finished(name, completed):  # noqa: ANN001
            if completed:
                loop.call_soon_threadsafe(on_end)
            else:
                loop.call_soon_threadsafe(on_error, INTERRUPTED)

        tokens = [
            engine.connect("started-word", _on_word),
            engine.connect("finished-utterance", _on_finished),
        ]
        try:
            engine.setProperty("rate", rate_wpm)
            engine.say(text)
            engine.runAndWait()
        except Exception as exc:
            logger.exception("Local speech engine failed")
            loop.call_soon_threadsafe(on_error, str(exc))
        finally:
            for token in tokens:
                engine.disconnect(token)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
        if self._engine is not None:
            self._engine.stop()

