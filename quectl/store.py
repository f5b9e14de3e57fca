"""
Persistence for jobs.

``Store`` is the contract every backend meets; each call applies fully or not
at all. Ids are assigned on first insert, grow monotonically and are never
handed out again, not even after the record is destroyed.
"""

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional, Union

from .config import DURABLE, Config
from .models import COMPLETED, FAILED, INCOMPLETE, STATUSES, Job
from .utils import now_iso

JobOrId = Union[Job, int]


def job_id_of(job: JobOrId) -> Optional[int]:
    return job.id if isinstance(job, Job) else job


class Store(ABC):

    # ---------- Lifecycle ----------
    def setup(self):
        """Provision storage once. Safe to repeat."""

    def initialize(self):
        """Open or create storage on process start. Safe to repeat."""

    def close(self):
        pass

    # ---------- Queries ----------
    @abstractmethod
    def find_all(self) -> List[Job]:
        ...

    @abstractmethod
    def find_by_status(self, *statuses: str) -> List[Job]:
        ...

    @abstractmethod
    def find_for_worker(self, worker: str) -> List[Job]:
        ...

    @abstractmethod
    def find(self, job: JobOrId) -> Optional[Job]:
        ...

    def find_completed(self) -> List[Job]:
        return self.find_by_status(COMPLETED)

    def find_incomplete(self) -> List[Job]:
        return self.find_by_status(*INCOMPLETE)

    def find_failed(self) -> List[Job]:
        return self.find_by_status(FAILED)

    def count_by_status(self) -> Dict[str, int]:
        out = {s: 0 for s in STATUSES}
        for job in self.find_all():
            out[job.status] = out.get(job.status, 0) + 1
        return out

    # ---------- Writes ----------
    @abstractmethod
    def insert(self, job: Job) -> Job:
        ...

    @abstractmethod
    def update(self, job: Job) -> Job:
        ...

    @abstractmethod
    def destroy(self, job: JobOrId):
        ...


class MemoryStore(Store):
    """Volatile store; everything is gone when the process exits.

    Arguments are deep-copied going in and coming out, so a caller mutating
    its payload never changes what is stored.
    """

    def __init__(self):
        self._jobs: Dict[int, Job] = {}
        self._last_id = 0
        self._lock = threading.RLock()

    def find_all(self) -> List[Job]:
        with self._lock:
            return [_copy(self._jobs[k]) for k in sorted(self._jobs)]

    def find_by_status(self, *statuses: str) -> List[Job]:
        return [j for j in self.find_all() if j.status in statuses]

    def find_for_worker(self, worker: str) -> List[Job]:
        return [j for j in self.find_all() if j.worker == worker]

    def find(self, job: JobOrId) -> Optional[Job]:
        with self._lock:
            found = self._jobs.get(job_id_of(job))
            return _copy(found) if found is not None else None

    def insert(self, job: Job) -> Job:
        ts = now_iso()
        with self._lock:
            self._last_id += 1
            stored = _copy(replace(job, id=self._last_id, created_at=ts, updated_at=ts))
            self._jobs[stored.id] = stored
            return _copy(stored)

    def update(self, job: Job) -> Job:
        if job.id is None:
            return self.insert(job)
        ts = now_iso()
        with self._lock:
            previous = self._jobs.get(job.id)
            created_at = previous.created_at if previous else (job.created_at or ts)
            stored = _copy(replace(job, created_at=created_at, updated_at=ts))
            self._jobs[job.id] = stored
            self._last_id = max(self._last_id, job.id)
            return _copy(stored)

    def destroy(self, job: JobOrId):
        with self._lock:
            self._jobs.pop(job_id_of(job), None)


def _copy(job: Job) -> Job:
    return replace(job, arguments=copy.deepcopy(job.arguments))


def build_store(config: Config) -> Store:
    if config.store == DURABLE:
        from .db import SQLiteStore
        return SQLiteStore(config.db_path)
    return MemoryStore()
