"""Unit tests for the in-memory preprocess job store.

WHY: The job store is what HTTP clients poll while audio is prepared.
Overlapping runs, missing cleanup or wrong status transitions would show
stale progress or let two prefetches race on one session.

HOW: Tests are organized by class, one per JobStore concern:
  - TestJobCreation: create_job basics and the single-active-job guard
  - TestJobUpdate: status transitions, progress, terminal stamping
  - TestTTLCleanup: expiry logic and boundary conditions
  - TestThreadSafety: concurrent updates don't corrupt state

RULES:
- Each test creates its own JobStore instance (no shared mutable state)
- Time-dependent tests use monkeypatch to control time.time()
"""

from __future__ import annotations

import threading
import time

import pytest

from rsvp_reader.server.jobs import DEFAULT_TTL_SECONDS, JobStatus, JobStore


def _finished_job(store: JobStore, status: JobStatus = JobStatus.COMPLETED):
    job = store.create_job()
    store.update_job(job.id, status=status)
    return job


# ---------------------------------------------------------------------------
# TestJobCreation
# ---------------------------------------------------------------------------


class TestJobCreation:
    """JobStore.create_job() creates a job in PENDING state."""

    def test_creates_pending_job(self):
        store = JobStore()
        job = store.create_job({"voice": "Kore", "wpm": 350})
        assert job.status == JobStatus.PENDING
        assert job.settings == {"voice": "Kore", "wpm": 350}
        assert job.percent == 0
        assert job.completed_at is None
        assert store.get_job(job.id) is job

    def test_default_settings_is_empty_dict(self):
        assert JobStore().create_job().settings == {}

    def test_rejects_second_active_job(self):
        store = JobStore()
        store.create_job()
        with pytest.raises(RuntimeError):
            store.create_job()

    def test_allows_new_job_after_completion(self):
        store = JobStore()
        first = _finished_job(store)
        second = store.create_job()
        assert first.id != second.id
        assert [j.id for j in store.list_jobs()] == [first.id, second.id]

    def test_store_full(self):
        store = JobStore(max_jobs=1)
        _finished_job(store)
        with pytest.raises(ValueError):
            store.create_job()

    def test_unknown_id(self):
        assert JobStore().get_job("nonexistent") is None


# ---------------------------------------------------------------------------
# TestJobUpdate
# ---------------------------------------------------------------------------


class TestJobUpdate:
    """JobStore.update_job() applies status and fields."""

    def test_progress_callback(self):
        store = JobStore()
        job = store.create_job()
        store.progress_callback(job.id)(40, 12)
        assert (job.percent, job.eta_seconds) == (40, 12)

    def test_completed_sets_completed_at(self):
        store = JobStore()
        job = _finished_job(store)
        assert job.completed_at is not None

    def test_failed_sets_completed_at(self):
        store = JobStore()
        job = _finished_job(store, JobStatus.FAILED)
        assert job.completed_at is not None

    def test_processing_does_not_set_completed_at(self):
        store = JobStore()
        job = store.create_job()
        store.update_job(job.id, status=JobStatus.PROCESSING)
        assert job.completed_at is None

    def test_unknown_field_rejected(self):
        store = JobStore()
        job = store.create_job()
        with pytest.raises(AttributeError):
            store.update_job(job.id, filename="x")

    def test_missing_job_returns_none(self):
        assert JobStore().update_job("nonexistent", status=JobStatus.FAILED) is None


# ---------------------------------------------------------------------------
# TestTTLCleanup
# ---------------------------------------------------------------------------


class TestTTLCleanup:
    """JobStore.cleanup_expired() removes terminal jobs past their TTL."""

    def test_removes_expired_job(self, monkeypatch):
        store = JobStore(ttl_seconds=60)
        monkeypatch.setattr(time, "time", lambda: 100.0)
        job = _finished_job(store)

        monkeypatch.setattr(time, "time", lambda: 161.0)
        assert store.cleanup_expired() == 1
        assert store.get_job(job.id) is None

    def test_keeps_recent_job(self, monkeypatch):
        store = JobStore(ttl_seconds=60)
        monkeypatch.setattr(time, "time", lambda: 100.0)
        job = _finished_job(store, JobStatus.FAILED)

        monkeypatch.setattr(time, "time", lambda: 159.0)
        assert store.cleanup_expired() == 0
        assert store.get_job(job.id) is not None

    def test_ignores_active_jobs(self, monkeypatch):
        store = JobStore(ttl_seconds=1)
        job = store.create_job()
        store.update_job(job.id, status=JobStatus.PROCESSING)
        monkeypatch.setattr(time, "time", lambda: 1e12)
        assert store.cleanup_expired() == 0

    def test_default_ttl_is_one_hour(self):
        assert DEFAULT_TTL_SECONDS == 3600


# ---------------------------------------------------------------------------
# TestThreadSafety
# ---------------------------------------------------------------------------


class TestThreadSafety:
    """Concurrent progress updates leave the job consistent."""

    def test_concurrent_progress_updates(self):
        store = JobStore()
        job = store.create_job()
        callback = store.progress_callback(job.id)

        def worker(start):
            for percent in range(start, 100, 4):
                callback(percent, None)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert 0 <= job.percent < 100
        assert job.status == JobStatus.PENDING
