"""Tests for the display helpers and key mapping."""

from __future__ import annotations

import pytest

from rsvp_reader.core.ir import PlaybackState
from rsvp_reader.core.segmenter import segment
from rsvp_reader.playback.engine import NOT_READY_NOTICE, PlaybackEngine
from rsvp_reader.playback.sources import UtteranceTimingSource
from rsvp_reader.presentation import (
    format_eta,
    handle_key,
    highlighted_words,
    reading_progress,
    render_rsvp_line,
    split_focal,
)

from conftest import SAMPLE_TEXT, FakeSpeechEngine


class TestSplitFocal:
    @pytest.mark.parametrize(
        "word, expected",
        [
            ("a", ("", "a", "")),
            ("ab", ("", "a", "b")),
            ("Hola", ("H", "o", "la")),
            ("palabras", ("pa", "l", "abras")),
        ],
    )
    def test_pivot(self, word, expected):
        assert split_focal(word) == expected

    def test_empty(self):
        assert split_focal("") == ("", "", "")

    def test_parts_rebuild_word(self):
        word = "extraordinariamente"
        assert "".join(split_focal(word)) == word


class TestReadingProgress:
    def test_percent_and_remaining(self):
        progress = reading_progress(50, 200, 100)
        assert progress.percent == 25.0
        assert (progress.remaining_minutes, progress.remaining_seconds) == (1, 30)
        assert progress.label == "1m 30s"

    def test_at_end(self):
        progress = reading_progress(10, 10, 300)
        assert progress.percent == 100.0
        assert progress.label == "0m 00s"

    def test_no_words(self):
        assert reading_progress(0, 0, 300).percent == 0.0


class TestFormatEta:
    def test_minutes_and_seconds(self):
        assert format_eta(125) == "2m 05s remaining"
        assert format_eta(0) == "0m 00s remaining"

    def test_unknown(self):
        assert format_eta(None) == ""


class TestViewModels:
    def test_highlighted_words(self):
        rows = highlighted_words(["Uno", "dos", "tres"], 1)
        assert rows == [(0, "Uno", False), (1, "dos", True), (2, "tres", False)]

    def test_rsvp_line_keeps_focal_column(self):
        for word in ("Hola", "extraordinariamente", "y"):
            line = render_rsvp_line(word, width=10)
            assert line.index("[") == 5

    def test_rsvp_line_blank(self):
        assert render_rsvp_line("", width=8) == " " * 8


class TestHandleKey:
    @pytest.fixture
    def engine(self):
        notices = []
        engine = PlaybackEngine(on_notice=notices.append)
        engine.notices = notices
        engine.load(segment(SAMPLE_TEXT))
        return engine

    def test_arrows_seek(self, engine):
        assert handle_key(engine, "right")
        assert engine.snapshot().current_word_index == 1
        assert handle_key(engine, "right", shift=True)
        assert engine.snapshot().current_word_index == 6
        assert handle_key(engine, "left")
        assert engine.snapshot().current_word_index == 5

    def test_space_before_ready_gives_notice(self, engine):
        handle_key(engine, "space")
        assert engine.state == PlaybackState.STOPPED
        assert engine.notices == [NOT_READY_NOTICE]

    def test_space_toggles_and_arrows_ignored_while_playing(self, engine):
        engine.attach_source(UtteranceTimingSource(engine.document, FakeSpeechEngine(), 300))
        handle_key(engine, "space")
        assert engine.state == PlaybackState.PLAYING
        assert handle_key(engine, "right") is False
        handle_key(engine, "space")
        assert engine.state == PlaybackState.PAUSED
        assert handle_key(engine, "escape")
        assert engine.state == PlaybackState.STOPPED

    def test_unknown_key(self, engine):
        assert handle_key(engine, "q") is False
