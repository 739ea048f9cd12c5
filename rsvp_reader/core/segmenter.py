"""Markdown stripping, word tokenization, and paragraph segmentation.

WHY: Every other stage addresses text by global word index: the estimator
weights words, the engine moves a cursor over them, the local speech
engine reports character offsets that must be turned back into words.
All of them have to agree on what a "word" is, so the pattern lives here
and nowhere else.

HOW: A single compiled pattern matches a run of word characters
(Unicode-aware, so accented letters and ñ are included, plus internal
hyphens and apostrophes) optionally followed by one trailing punctuation
mark, which stays attached to the token. Paragraphs are split on one or
more blank lines; blank paragraphs are dropped. Paragraph start indices
are the running word count.

RULES:
- segment() is pure and deterministic: same input, same Document
- Trailing punctuation is part of the word token (display and weighting)
- paragraph_starts[i] == number of words in paragraphs[:i]
- Markdown is stripped before tokenizing so display words and synthesis
  paragraphs come from the same text
"""

from __future__ import annotations

import re

from rsvp_reader.core.ir import Document

WORD_RE = re.compile(r"""[\w'\-]+(?:[.,;!?¿¡:"()\[\]{}])?""")
"""One display word: letters/digits/'/- with at most one trailing mark."""

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

# (pattern, replacement) pairs applied in order.
_MARKDOWN_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),  # bold
    (re.compile(r"_(.*?)_"), r"\1"),  # italics
    (re.compile(r"\*(.*?)\*"), r"\1"),  # italics
    (re.compile(r"#{1,6}\s"), ""),  # headings
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),  # links
    (re.compile(r"`([^`]+)`"), r"\1"),  # inline code
)


def strip_markdown(text: str) -> str:
    """Remove lightweight Markdown markup, keeping the readable text."""
    if not text:
        return ""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text


def tokenize(text: str) -> list[str]:
    """Return the display words of *text* in order."""
    return WORD_RE.findall(text)


def count_words(text: str) -> int:
    """Count word-pattern matches in *text*.

    Used to turn a character offset reported by the speech engine into a
    word offset: the number of words before the offset is the index of
    the word being spoken.
    """
    return sum(1 for _ in WORD_RE.finditer(text))


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, dropping empty or whitespace-only paragraphs."""
    return [p for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def segment(text: str) -> Document:
    """Segment *text* into words, paragraphs, and paragraph start indices.

    Args:
        text: Cleaned article text, optionally containing Markdown.

    Returns:
        An immutable Document. Empty input yields an empty Document.
    """
    plain = strip_markdown(text)
    paragraphs = split_paragraphs(plain)

    words: list[str] = []
    starts: list[int] = []
    for paragraph in paragraphs:
        starts.append(len(words))
        words.extend(tokenize(paragraph))

    return Document(
        words=tuple(words),
        paragraphs=tuple(paragraphs),
        paragraph_starts=tuple(starts),
    )
