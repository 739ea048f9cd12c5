"""Command-line interface for the RSVP reader.

WHY: Users want to hear an article read aloud while the words flash one
at a time, straight from the terminal, and optionally keep the narration.
The CLI wires the whole flow (text loading, segmentation, audio
preparation, exports, playback with a live RSVP line) behind one command.

HOW: Uses argparse for the article path, voice settings, export formats
and output directory. Runs the async flow via asyncio.run(). Status
messages and the RSVP line go to stderr; export files are saved next to
the article (or to --output-dir).

RULES:
- Positional argument: path to a UTF-8 text/markdown article
- --engine remote needs GEMINI_API_KEY; checked before any network call
- --formats: comma-separated exporter keys (default: all registered);
  exports are only produced for the remote voice
- Output naming: {stem}{suffix}, numeric suffix for conflicts (-audio-2.wav)
- Exit codes: 0 success, 1 configuration/batch/input error, 130 Ctrl-C
- During playback on a terminal: space toggles pause, arrows seek while
  paused (shift for ten words), Esc stops
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from rsvp_reader.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_VOICE,
    DEFAULT_WPM,
    ENGINE_KINDS,
    MAX_WPM,
    MIN_WPM,
    REMOTE_VOICES,
    ConfigurationError,
)
from rsvp_reader.core.ir import CursorSnapshot, PlaybackState
from rsvp_reader.core.prefetch import BatchFailedError
from rsvp_reader.exporters import EXPORTERS
from rsvp_reader.exporters.base import ExportOutput
from rsvp_reader.playback.engine import PlaybackEngine
from rsvp_reader.presentation import format_eta, handle_key, reading_progress, render_rsvp_line
from rsvp_reader.session import ReaderSession

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed so it shows immediately."""
    print(msg, file=sys.stderr, flush=True)


def _resolve_output_path(
    stem: str,
    suffix: str,
    output_dir: Path,
) -> Path:
    """Resolve the output file path, adding a numeric suffix on conflict.

    RULES:
    - First attempt: {stem}{suffix} (e.g. article-audio.wav)
    - Conflict: counter inserted before the extension, starting at 2
      (e.g. article-audio-2.wav)
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name, suffix_ext = suffix[:dot_idx], suffix[dot_idx:]
    else:
        suffix_name, suffix_ext = suffix, ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: ExportOutput, stem: str, output_dir: Path) -> Path:
    """Write one export to a conflict-free path and return that path."""
    path = _resolve_output_path(stem, output.suffix, output_dir)
    if isinstance(output.content, bytes):
        path.write_bytes(output.content)
    else:
        path.write_text(output.content, encoding="utf-8")
    return path


def _parse_formats(value: str | None) -> list[str]:
    """Split --formats into exporter keys, rejecting unknown ones."""
    if not value:
        return list(EXPORTERS.keys())
    keys = [f.strip() for f in value.split(",") if f.strip()]
    for key in keys:
        if key not in EXPORTERS:
            raise ConfigurationError(
                "Unknown export format '{}'. Available: {}".format(
                    key, ", ".join(sorted(EXPORTERS.keys()))
                )
            )
    return keys


class TerminalView:
    """Renders cursor snapshots as a single self-overwriting stderr line."""

    def __init__(self, wpm: int, stream=None) -> None:  # noqa: ANN001
        self.wpm = wpm
        self.stream = stream if stream is not None else sys.stderr
        self.stopped = asyncio.Event()

    def on_change(self, snapshot: CursorSnapshot) -> None:
        if snapshot.playback_state == PlaybackState.STOPPED:
            self.stopped.set()
            return
        progress = reading_progress(
            snapshot.current_word_index, snapshot.word_count, self.wpm
        )
        line = "\r{}  {:5.1f}%  {}".format(
            render_rsvp_line(snapshot.current_word),
            progress.percent,
            progress.label,
        )
        self.stream.write(line)
        self.stream.flush()

    def on_notice(self, message: str) -> None:
        self.stream.write("\n")
        _status(message)


# ---------------------------------------------------------------------------
# Keyboard
# ---------------------------------------------------------------------------

# Longest sequences first; a lone ESC is the escape key
_KEY_SEQUENCES = (
    ("\x1b[1;2C", "right", True),
    ("\x1b[1;2D", "left", True),
    ("\x1b[C", "right", False),
    ("\x1b[D", "left", False),
    (" ", "space", False),
    ("\x1b", "escape", False),
)


def decode_keys(data: str) -> list[tuple[str, bool]]:
    """Turn raw terminal input into (key, shift) pairs for handle_key().

    Bytes that are not reader keys are dropped.
    """
    keys = []
    i = 0
    while i < len(data):
        for sequence, key, shift in _KEY_SEQUENCES:
            if data.startswith(sequence, i):
                keys.append((key, shift))
                i += len(sequence)
                break
        else:
            i += 1
    return keys


@contextmanager
def _keyboard(engine: PlaybackEngine) -> Iterator[None]:
    """Feed key presses to handle_key() while the body runs.

    RULES:
    - Only active when stdin is a POSIX terminal; otherwise a no-op
    - The terminal is switched to cbreak mode and always restored
    """
    if sys.platform == "win32" or not sys.stdin.isatty():
        yield
        return

    import termios
    import tty

    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    loop = asyncio.get_running_loop()

    def on_input() -> None:
        data = os.read(fd, 32).decode("utf-8", errors="ignore")
        for key, shift in decode_keys(data):
            if not handle_key(engine, key, shift=shift):
                logger.debug("Key %s ignored while %s", key, engine.state.value)

    tty.setcbreak(fd)
    loop.add_reader(fd, on_input)
    try:
        yield
    finally:
        loop.remove_reader(fd)
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _print_progress(percent: int, eta: int | None) -> None:
    label = format_eta(eta)
    sys.stderr.write("\rProcessing audio... {:3d}% {}".format(percent, label).ljust(60))
    sys.stderr.flush()


async def _run(args: argparse.Namespace) -> int:
    """Load, prepare, export and play one article. Returns the exit code."""
    input_path = Path(args.input_file).resolve()
    if not input_path.is_file():
        _status("Error: File not found: {}".format(input_path))
        return 1

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _status("Error: Output directory does not exist: {}".format(output_dir))
        return 1

    view = TerminalView(args.wpm)
    try:
        format_keys = _parse_formats(args.formats)
        session = ReaderSession(
            engine_kind=args.engine,
            voice=args.voice,
            wpm=args.wpm,
            concurrency=args.concurrency,
            on_change=view.on_change,
            on_notice=view.on_notice,
        )
        document = session.set_text(input_path.read_text(encoding="utf-8"))
        if document.word_count == 0:
            _status("Error: No readable words in {}".format(input_path.name))
            return 1
        _status(
            "Loaded {} word(s) in {} paragraph(s) from {}".format(
                document.word_count, document.paragraph_count, input_path.name
            )
        )

        report = await session.preprocess(on_progress=_print_progress)
        if args.engine == "remote":
            sys.stderr.write("\n")
        _status(report.message)
    except (ConfigurationError, BatchFailedError) as e:
        _status("Error: {}".format(e))
        return 1

    if session.batch is not None and format_keys:
        saved = []
        for key in format_keys:
            for output in session.export(key):
                saved.append(_save_output(output, input_path.stem, output_dir))
        _status("Saved {} file(s) to {}".format(len(saved), output_dir))
        for path in saved:
            _status("  {}".format(path.name))

    if args.no_play:
        return 0

    _status(
        "Playing at {} wpm (space pauses, arrows seek while paused, "
        "Esc or Ctrl-C stops)".format(args.wpm)
    )
    view.stopped.clear()
    try:
        if session.engine.play():
            with _keyboard(session.engine):
                await view.stopped.wait()
    finally:
        session.close()
        sys.stderr.write("\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="rsvp_reader",
        description="Read an article one word at a time, synchronized to "
                    "synthesized speech. Use --serve to start the HTTP API instead.",
    )
    parser.add_argument(
        "input_file",
        help="Path to the text or markdown article to read.",
    )
    parser.add_argument(
        "--engine",
        choices=ENGINE_KINDS,
        default="remote",
        help="Voice engine: remote synthesis service or local system voice "
             "(default: %(default)s).",
    )
    parser.add_argument(
        "--voice",
        choices=REMOTE_VOICES,
        default=DEFAULT_VOICE,
        help="Remote voice (default: %(default)s).",
    )
    parser.add_argument(
        "--wpm",
        type=int,
        default=DEFAULT_WPM,
        help="Reading speed in words per minute, {}-{} (default: %(default)s).".format(
            MIN_WPM, MAX_WPM
        ),
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help="Paragraphs synthesized in parallel (default: %(default)s).",
    )
    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of exports. "
             "Available: {}. Default: all.".format(", ".join(sorted(EXPORTERS.keys()))),
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save exports (default: same as the article).",
    )
    parser.add_argument(
        "--no-play",
        action="store_true",
        help="Prepare audio and save exports without playing.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for ``python -m rsvp_reader``.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(_run(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
