"""Bounded-concurrency prefetch of per-paragraph audio.

WHY: An article has dozens of paragraphs and each synthesis call takes
seconds. Fetching them one by one is too slow; firing them all at once
overwhelms the service. A small fixed pool of workers gives overlap
without flooding, and the reader gets progress and an ETA while waiting.

HOW: A deque of (index, text) pairs is shared by exactly ``concurrency``
asyncio tasks. Each worker pops the next pair, awaits the fetch coroutine,
and writes the result into a pre-sized list at the paragraph's index, so
completion order never affects result order. Progress is reported after
every completed paragraph. When all workers finish, successful clips are
concatenated in paragraph order into a single export clip.

RULES:
- Exactly min(concurrency, len(paragraphs)) workers; popleft() on the
  shared deque is atomic under the single-threaded event loop
- A None result (or an unexpected exception, logged) is a paragraph
  failure: recorded, never aborts the batch
- ETA = average seconds per finished item × remaining items; None when
  that rounds to zero or less
- BatchResult.succeeded == 0 is a batch failure; callers raise
  BatchFailedError
- The export clip takes sample rate and channel count from the first
  successful item
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import numpy as np

from rsvp_reader.core.ir import AudioItem

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Awaitable["AudioItem | None"]]
ProgressFn = Callable[[int, "int | None"], None]


class BatchFailedError(Exception):
    """Raised when no paragraph of a batch could be synthesized."""


@dataclass
class ExportClip:
    """All successful paragraph clips joined in paragraph order."""

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1]) if self.samples.ndim > 1 else 1

    @property
    def duration_s(self) -> float:
        return self.samples.shape[0] / float(self.sample_rate)


@dataclass
class BatchResult:
    """Outcome of one prefetch batch.

    RULES:
    - items has one slot per paragraph, None where synthesis failed
    - failed_count == number of None slots
    - clip is None when nothing succeeded
    """

    items: list[AudioItem | None] = field(default_factory=list)
    failed_count: int = 0
    clip: ExportClip | None = None

    @property
    def succeeded(self) -> int:
        return len(self.items) - self.failed_count

    @property
    def ok(self) -> bool:
        return self.succeeded > 0

    def raise_for_failure(self) -> None:
        """Raise BatchFailedError when no paragraph succeeded."""
        if not self.ok:
            raise BatchFailedError(
                "Audio could not be generated for any of the {} paragraph(s).".format(
                    len(self.items)
                )
            )


def concatenate_items(items: Sequence[AudioItem | None]) -> ExportClip | None:
    """Join the samples of all non-None items in order.

    Returns None when there is nothing to join.
    """
    valid = [item for item in items if item is not None and item.frames > 0]
    if not valid:
        return None
    first = valid[0]
    samples = np.concatenate([item.samples for item in valid], axis=0)
    return ExportClip(samples=samples, sample_rate=first.sample_rate)


async def prefetch_all(
    paragraphs: Sequence[str],
    fetch: FetchFn,
    concurrency: int = 3,
    on_progress: ProgressFn | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> BatchResult:
    """Fetch audio for every paragraph with a bounded worker pool.

    Args:
        paragraphs: Paragraph texts in document order.
        fetch: Coroutine function returning an AudioItem or None for one text.
        concurrency: Number of concurrent workers (at least 1).
        on_progress: Called with (percent_complete, eta_seconds_or_None)
            after each paragraph completes.
        clock: Monotonic time source, injectable for tests.

    Returns:
        A BatchResult with positional items, the failure count, and the
        concatenated export clip.
    """
    total = len(paragraphs)
    results: list[AudioItem | None] = [None] * total
    if total == 0:
        return BatchResult(items=results)

    queue: deque[tuple[int, str]] = deque(enumerate(paragraphs))
    processed = 0
    failed = 0
    started = clock()

    async def worker() -> None:
        nonlocal processed, failed
        while queue:
            index, text = queue.popleft()
            try:
                item = await fetch(text)
            except Exception:
                logger.exception("Paragraph %d failed and will be skipped", index + 1)
                item = None
                failed += 1
            else:
                if item is None:
                    failed += 1
                    logger.error("Paragraph %d failed and will be skipped", index + 1)
            results[index] = item

            processed += 1
            if on_progress is not None:
                elapsed = clock() - started
                remaining = round(elapsed / processed * (total - processed))
                on_progress(
                    round(processed / total * 100),
                    remaining if remaining > 0 else None,
                )

    workers = max(1, min(concurrency, total))
    await asyncio.gather(*(worker() for _ in range(workers)))

    logger.info("Prefetch finished: %d/%d paragraph(s) ready", total - failed, total)
    return BatchResult(
        items=results,
        failed_count=failed,
        clip=concatenate_items(results),
    )
