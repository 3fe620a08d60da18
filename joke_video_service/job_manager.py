"""In-memory tracking for generation jobs (topic -> joke, images, narration).

Progress callbacks arrive from worker threads, hence the lock.
"""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional


@dataclass
class Job:
    job_id: str
    topic: str
    status: str = "queued"  # queued | running | completed | failed
    step: str = "idle"  # generation status while running
    message: str = ""
    error: Optional[str] = None
    raw: Optional[str] = None  # unparseable LLM output, when that is what failed
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


class JobManager:
    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create_job(self, topic: str) -> Job:
        job = Job(job_id=uuid.uuid4().hex, topic=topic, message="Queued for generation")
        with self._lock:
            self._jobs[job.job_id] = job
        return replace(job)

    def update_job(
        self,
        job_id: str,
        *,
        status: Optional[str] = None,
        step: Optional[str] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
        raw: Optional[str] = None,
    ) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            if status is not None:
                job.status = status
            if step is not None:
                job.step = step
            if message is not None:
                job.message = message
            if raw is not None:
                job.raw = raw
            if error is not None:
                job.error = error
            job.updated_at = time.time()
            return replace(job)

    def set_step(self, job_id: str, step: str, message: str) -> Optional[Job]:
        return self.update_job(job_id, status="running", step=step, message=message)

    def complete_job(self, job_id: str) -> Optional[Job]:
        return self.update_job(job_id, status="completed", step="preview", message="Ready to preview")

    def fail_job(self, job_id: str, error: str, raw: Optional[str] = None) -> Optional[Job]:
        # generation errors send the UI back to idle
        return self.update_job(
            job_id, status="failed", step="idle", message="Something went wrong", error=error, raw=raw
        )

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def delete_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.pop(job_id, None)


job_manager = JobManager()
