"""Playback cursor and synchronization engine.

WHY: The reader sees one word at a time, and that word must follow the
voice through play, pause, seek and resume, whichever voice is speaking.
Both voices report progress differently, so a single state machine owns
the cursor and delegates "where is the audio now" to a TimingSource.

HOW: PlaybackEngine implements TimingListener. The active source calls
back into it with paragraph_started / word_changed / finished / failed;
the engine updates its CursorState and notifies the front end through
``on_change``. User actions (play, pause, stop, seek) validate the
current state, then drive the source.

    stopped ──play──▶ playing ──pause──▶ paused ──play──▶ playing
       ▲                 │                  │
       └──────stop───────┴──────stop────────┘

RULES:
- The cursor is mutated only here; front ends read snapshots
- play() is rejected (False + notice) before audio/engine is ready
- seek() is rejected while playing; it clamps to [0, word_count - 1]
- From paused: seekedWhilePaused=False → resume in place,
  True → cold start at the chosen word
- stop() is idempotent and safe from inside a source callback
- Source errors are never fatal: notice, then stop()
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from rsvp_reader.core.ir import CursorSnapshot, CursorState, Document, PlaybackState
from rsvp_reader.playback.sources import TimingListener, TimingSource

logger = logging.getLogger(__name__)

NOT_READY_NOTICE = "Process audio before playing."

ChangeFn = Callable[[CursorSnapshot], None]
NoticeFn = Callable[[str], None]


class PlaybackEngine(TimingListener):
    """Single authoritative playback state machine for one session.

    Construct once per session and hand it to whichever layer issues
    play/pause/stop/seek. The engine owns its source; there is no module
    level playback state.

    Args:
        on_change: Called with a fresh snapshot whenever the cursor changes.
        on_notice: Called with user-facing messages (rejections, failures).
    """

    def __init__(
        self,
        on_change: ChangeFn | None = None,
        on_notice: NoticeFn | None = None,
    ) -> None:
        self._on_change = on_change
        self._on_notice = on_notice
        self._document = Document()
        self._cursor = CursorState()
        self._source: TimingSource | None = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @property
    def document(self) -> Document:
        return self._document

    @property
    def source(self) -> TimingSource | None:
        return self._source

    @property
    def is_ready(self) -> bool:
        return self._source is not None and self._source.ready

    @property
    def state(self) -> PlaybackState:
        return self._cursor.playback_state

    def load(self, document: Document) -> None:
        """Replace the document; stops playback and resets the cursor."""
        self.detach_source()
        self._document = document
        self._cursor = CursorState()
        self._notify_change()

    def attach_source(self, source: TimingSource) -> None:
        """Use *source* for subsequent playback, replacing any previous one."""
        self.detach_source()
        source.bind(self)
        self._source = source

    def detach_source(self) -> None:
        """Stop playback and forget the source; audio is no longer ready."""
        self.stop()
        self._source = None

    def snapshot(self) -> CursorSnapshot:
        cursor = self._cursor
        index = cursor.current_word_index
        return CursorSnapshot(
            playback_state=cursor.playback_state,
            current_word_index=index,
            current_paragraph_index=cursor.current_paragraph_index,
            seeked_while_paused=cursor.seeked_while_paused,
            previous_word=self._document.word_at(index - 1),
            current_word=self._document.word_at(index),
            next_word=self._document.word_at(index + 1),
            word_count=self._document.word_count,
        )

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def play(self) -> bool:
        """Start or resume playback. Returns False when rejected."""
        cursor = self._cursor
        if cursor.playback_state == PlaybackState.PLAYING:
            return False
        if self._document.word_count == 0:
            return False
        if not self.is_ready:
            self._notice(NOT_READY_NOTICE)
            return False

        source = self._source
        if cursor.playback_state == PlaybackState.PAUSED and not cursor.seeked_while_paused:
            cursor.playback_state = PlaybackState.PLAYING
            self._notify_change()
            try:
                source.resume()
            except Exception as exc:
                logger.exception("Resuming playback failed")
                self.failed("Playback could not resume: {}".format(exc))
                return False
            return True

        # Cold start at the cursor's word
        cursor.playback_state = PlaybackState.PLAYING
        cursor.seeked_while_paused = False
        word_index = cursor.current_word_index
        paragraph = self._document.paragraph_of(word_index)
        cursor.current_paragraph_index = paragraph
        word_in_paragraph = word_index - self._document.paragraph_starts[paragraph]
        self._notify_change()

        logger.debug(
            "Cold start at word %d (paragraph %d, word %d in paragraph)",
            word_index, paragraph, word_in_paragraph,
        )
        try:
            source.start(paragraph, word_in_paragraph)
        except Exception as exc:
            logger.exception("Starting playback failed")
            self.failed("Playback could not start: {}".format(exc))
            return False
        return self._cursor.playback_state == PlaybackState.PLAYING

    def pause(self) -> bool:
        """Pause playback in place. Valid only while playing."""
        cursor = self._cursor
        if cursor.playback_state != PlaybackState.PLAYING:
            return False
        try:
            self._source.pause()
        except Exception as exc:
            logger.exception("Pausing playback failed")
            self.failed("Playback could not pause: {}".format(exc))
            return False
        cursor.playback_state = PlaybackState.PAUSED
        cursor.seeked_while_paused = False
        self._notify_change()
        return True

    def stop(self) -> None:
        """Stop playback and reset the cursor to the first word."""
        if self._source is not None:
            self._source.stop()
        fresh = CursorState()
        if self._cursor != fresh:
            self._cursor = fresh
            self._notify_change()

    def seek(self, target_word_index: int) -> bool:
        """Move the cursor to a word. Rejected while playing."""
        cursor = self._cursor
        if cursor.playback_state == PlaybackState.PLAYING:
            return False
        count = self._document.word_count
        if count == 0:
            return False
        target = max(0, min(target_word_index, count - 1))
        cursor.current_word_index = target
        cursor.current_paragraph_index = self._document.paragraph_of(target)
        if cursor.playback_state == PlaybackState.PAUSED:
            cursor.seeked_while_paused = True
        self._notify_change()
        return True

    def seek_by(self, delta: int) -> bool:
        """Seek relative to the current word (e.g. ±1, ±10)."""
        return self.seek(self._cursor.current_word_index + delta)

    def toggle(self) -> bool:
        """Play when not playing, pause when playing."""
        if self._cursor.playback_state == PlaybackState.PLAYING:
            return self.pause()
        return self.play()

    # ------------------------------------------------------------------
    # TimingListener
    # ------------------------------------------------------------------

    def paragraph_started(self, paragraph_index: int) -> None:
        if self._cursor.playback_state != PlaybackState.PLAYING:
            return
        if self._cursor.current_paragraph_index != paragraph_index:
            self._cursor.current_paragraph_index = paragraph_index
            self._notify_change()

    def word_changed(self, word_index: int, paragraph_index: int) -> None:
        cursor = self._cursor
        if cursor.playback_state != PlaybackState.PLAYING:
            return
        if cursor.current_word_index == word_index:
            return
        cursor.current_word_index = word_index
        cursor.current_paragraph_index = paragraph_index
        self._notify_change()

    def finished(self) -> None:
        logger.info("Reached the end of the document")
        self.stop()

    def failed(self, message: str) -> None:
        logger.error("Playback failed: %s", message)
        self._notice(message)
        self.stop()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_change(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    def _notice(self, message: str) -> None:
        if self._on_notice is not None:
            self._on_notice(message)
