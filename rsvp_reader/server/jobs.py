"""In-memory store for audio preprocess jobs with TTL cleanup.

WHY: Preparing remote audio for an article takes from seconds to minutes,
so the HTTP API returns a job ID immediately, runs the prefetch in the
background and lets clients poll for percent complete and ETA. One
process serves one reader, so an in-memory store is enough.

HOW: Three components work together:
  JobStatus  — enum of valid job states
  Job        — dataclass holding status, progress and outcome
  JobStore   — lock-protected dict with create/get/update/list, a guard
               against overlapping preprocess runs, and TTL cleanup

RULES:
- All store mutations are protected by threading.Lock
- Job IDs are UUID4 hex strings generated at creation time
- At most one job is active (pending or processing) at a time
- TTL-based expiry removes terminal jobs only, measured from completion
- Default TTL is 1 hour (3600 seconds)
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for a preprocess job.

    RULES:
    - pending: created, background task not started yet
    - processing: paragraphs being synthesized
    - completed: audio ready (possibly with skipped paragraphs)
    - failed: configuration error, batch failure or unexpected error
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class Job:
    """Metadata and progress for one preprocess job.

    RULES:
    - percent: 0–100, updated after each finished paragraph
    - eta_seconds: None when unknown or nothing left
    - failed_count / message: set on completion
    - error: set only when status is FAILED
    """

    id: str
    status: JobStatus
    created_at: float
    updated_at: float
    settings: Dict[str, Any] = field(default_factory=dict)
    percent: int = 0
    eta_seconds: Optional[int] = None
    failed_count: int = 0
    paragraphs: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[float] = None


class JobStore:
    """Thread-safe in-memory store for preprocess jobs."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, max_jobs: int = 100) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(self, settings: Optional[Dict[str, Any]] = None) -> Job:
        """Create a PENDING job.

        Raises:
            RuntimeError: Another job is still pending or processing.
            ValueError: The store is full.
        """
        with self._lock:
            active = [j for j in self._jobs.values() if j.status in ACTIVE_STATUSES]
            if active:
                raise RuntimeError(
                    "Audio is already being processed (job {}).".format(active[0].id)
                )
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of stored jobs ({}) reached".format(self.max_jobs)
                )

            now = time.time()
            job = Job(
                id=uuid.uuid4().hex,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
                settings=settings or {},
            )
            self._jobs[job.id] = job

        logger.info("Created preprocess job %s", job.id)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Return the live Job, or None for unknown IDs."""
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        """Snapshot of all jobs, oldest first."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(self, job_id: str, status: Optional[JobStatus] = None, **fields: Any) -> Optional[Job]:
        """Apply *status* and any Job *fields*; returns None for unknown IDs.

        completed_at is stamped when the job reaches a terminal state.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if status is not None:
                job.status = status
            for name, value in fields.items():
                if not hasattr(job, name):
                    raise AttributeError("Job has no field '{}'".format(name))
                setattr(job, name, value)
            job.updated_at = time.time()
            if job.status in TERMINAL_STATUSES and job.completed_at is None:
                job.completed_at = job.updated_at
            return job

    def progress_callback(self, job_id: str):
        """Return an on_progress(percent, eta) callable bound to *job_id*."""

        def _on_progress(percent: int, eta: Optional[int]) -> None:
            self.update_job(job_id, percent=percent, eta_seconds=eta)

        return _on_progress

    def cleanup_expired(self) -> int:
        """Remove terminal jobs older than the TTL. Returns the count removed."""
        now = time.time()
        expired: List[Job] = []
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status not in TERMINAL_STATUSES or job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired.append(self._jobs.pop(job_id))

        for job in expired:
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)
        return len(expired)
