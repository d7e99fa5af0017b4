from __future__ import annotations

import threading
import uuid
from copy import deepcopy
from typing import Callable, Dict, List, Optional

from .errors import JobNotFoundError
from .models import JobRecord, UploadMeta

Transition = Callable[[JobRecord], JobRecord]


class JobRepository:
    """
    Abstract job store boundary. All state is process-lifetime only.
    """

    def create(self, meta: UploadMeta, job_id: Optional[str] = None) -> JobRecord:
        raise NotImplementedError

    def get(self, job_id: str) -> Optional[JobRecord]:
        raise NotImplementedError

    def transition(self, job_id: str, fn: Transition) -> JobRecord:
        raise NotImplementedError

    def list_jobs(self) -> List[JobRecord]:
        raise NotImplementedError

    @staticmethod
    def new_job_id() -> str:
        return str(uuid.uuid4())


class InMemoryJobRepository(JobRepository):
    """
    Dict-backed store. Records go in and out as copies so callers never share
    a mutable record. Transitions on the same id are serialised by a per-id
    lock; readers take no lock and see whichever record is currently stored,
    which is only ever replaced whole.
    """

    def __init__(self):
        self.jobs: Dict[str, JobRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _clone(self, obj):
        return deepcopy(obj)

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(job_id)
            if lock is None:
                raise JobNotFoundError(job_id)
            return lock

    def create(self, meta: UploadMeta, job_id: Optional[str] = None) -> JobRecord:
        with self._guard:
            if job_id is None:
                job_id = self.new_job_id()
                while job_id in self._locks:
                    job_id = self.new_job_id()
            elif job_id in self._locks:
                raise ValueError(f"Job already exists: {job_id}")
            job = JobRecord(
                id=job_id,
                original_name=meta.original_name,
                stored_ref=meta.stored_ref,
                size=meta.size,
                content_type=meta.content_type,
            )
            self._locks[job_id] = threading.Lock()
            self.jobs[job_id] = self._clone(job)
        return self._clone(job)

    def get(self, job_id: str) -> Optional[JobRecord]:
        job = self.jobs.get(job_id)
        return self._clone(job) if job else None

    def transition(self, job_id: str, fn: Transition) -> JobRecord:
        with self._lock_for(job_id):
            current = self.jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            updated = fn(self._clone(current))
            self.jobs[job_id] = self._clone(updated)
        return self._clone(updated)

    def list_jobs(self) -> List[JobRecord]:
        return [self._clone(job) for job in list(self.jobs.values())]
