"""Tests for the bounded-concurrency prefetch scheduler."""

from __future__ import annotations

import asyncio
import logging

import numpy as np
import pytest

from rsvp_reader.core.prefetch import (
    BatchFailedError,
    BatchResult,
    concatenate_items,
    prefetch_all,
)

from conftest import make_item


class FakeClock:
    def __init__(self, step: float = 1.0) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class TestConcurrency:
    def test_never_more_than_concurrency_in_flight(self):
        in_flight = 0
        peak = 0

        async def fetch(text):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            in_flight -= 1
            return make_item(text.split())

        paragraphs = ["p{}".format(i) for i in range(10)]
        result = asyncio.run(prefetch_all(paragraphs, fetch, concurrency=3))
        assert peak == 3
        assert result.failed_count == 0
        assert result.succeeded == 10

    def test_fewer_paragraphs_than_workers(self):
        started = []

        async def fetch(text):
            started.append(text)
            return make_item([text])

        result = asyncio.run(prefetch_all(["a", "b"], fetch, concurrency=5))
        assert sorted(started) == ["a", "b"]
        assert result.succeeded == 2

    def test_results_keep_paragraph_order(self):
        delays = {"slow": 3, "mid": 2, "fast": 0}

        async def fetch(text):
            for _ in range(delays[text]):
                await asyncio.sleep(0)
            return make_item([text], duration_s=0.1 * (delays[text] + 1))

        result = asyncio.run(prefetch_all(["slow", "mid", "fast"], fetch, concurrency=3))
        durations = [item.duration_s for item in result.items]
        assert durations == pytest.approx([0.4, 0.3, 0.1])


class TestFailures:
    def test_failed_paragraph_recorded_not_fatal(self):
        async def fetch(text):
            return None if text == "bad" else make_item([text])

        result = asyncio.run(prefetch_all(["a", "bad", "c"], fetch, concurrency=3))
        assert result.failed_count == 1
        assert result.items[1] is None
        assert result.items[0] is not None and result.items[2] is not None
        assert result.ok
        result.raise_for_failure()

    def test_unexpected_exception_counts_as_failure(self):
        async def fetch(text):
            if text == "boom":
                raise KeyError("unexpected")
            return make_item([text])

        result = asyncio.run(prefetch_all(["boom", "ok"], fetch))
        assert result.failed_count == 1
        assert result.items[0] is None

    def test_each_failure_logged_once(self, caplog):
        async def fetch(text):
            if text == "boom":
                raise KeyError("unexpected")
            return None if text == "bad" else make_item([text])

        with caplog.at_level(logging.ERROR, logger="rsvp_reader.core.prefetch"):
            asyncio.run(prefetch_all(["boom", "ok", "bad"], fetch, concurrency=1))

        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert [r.getMessage() for r in errors] == [
            "Paragraph 1 failed and will be skipped",
            "Paragraph 3 failed and will be skipped",
        ]
        assert errors[0].exc_info is not None
        assert not errors[1].exc_info

    def test_zero_success_is_batch_failure(self):
        async def fetch(text):
            return None

        result = asyncio.run(prefetch_all(["a", "b", "c"], fetch))
        assert result.failed_count == 3
        assert not result.ok
        assert result.clip is None
        with pytest.raises(BatchFailedError):
            result.raise_for_failure()

    def test_empty_paragraph_list(self):
        async def fetch(text):
            raise AssertionError("should not be called")

        result = asyncio.run(prefetch_all([], fetch))
        assert result.items == []
        assert result.failed_count == 0


class TestProgress:
    def test_percent_and_eta(self):
        reports = []

        async def fetch(text):
            return make_item([text])

        clock = FakeClock(step=2.0)
        asyncio.run(
            prefetch_all(
                ["a", "b", "c", "d"],
                fetch,
                concurrency=1,
                on_progress=lambda pct, eta: reports.append((pct, eta)),
                clock=clock,
            )
        )
        assert [pct for pct, _ in reports] == [25, 50, 75, 100]
        # Last report: nothing remaining → no ETA
        assert reports[-1][1] is None
        assert all(eta is None or eta > 0 for _, eta in reports)
        assert reports[0][1] is not None


class TestConcatenate:
    def test_failed_items_contribute_nothing(self):
        a = make_item(["a"], duration_s=0.5)
        c = make_item(["c"], duration_s=0.25)
        a.samples[:] = 0.1
        c.samples[:] = 0.2
        clip = concatenate_items([a, None, c])
        assert clip.samples.shape == (a.frames + c.frames, 1)
        assert clip.sample_rate == a.sample_rate
        assert clip.duration_s == pytest.approx(0.75)
        assert np.all(clip.samples[: a.frames] == np.float32(0.1))

    def test_nothing_to_join(self):
        assert concatenate_items([None, None]) is None
        assert concatenate_items([]) is None

    def test_batch_result_defaults(self):
        result = BatchResult()
        assert result.succeeded == 0
        assert not result.ok
