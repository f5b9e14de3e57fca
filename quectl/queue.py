import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Optional, Tuple, Union

from .errors import JobNotFound
from .models import Job
from .worker import Worker


@dataclass(frozen=True)
class DispatchQueue:
    """Jobs of a single worker type: waiting in ``queued`` (FIFO) and
    executing in ``running`` (at most ``worker.concurrency`` of them).

    Every operation returns a new queue and leaves the receiver untouched.
    Only the worker's coordinator should hold and replace a queue.
    """
    worker: Worker
    queued: Tuple[Job, ...] = ()
    running: Tuple[Job, ...] = ()

    @classmethod
    def new(cls, worker: Worker, jobs: Iterable[Job] = ()) -> "DispatchQueue":
        return cls(worker=worker, queued=tuple(jobs), running=())

    @property
    def size(self) -> int:
        return len(self.queued)

    @property
    def active(self) -> int:
        return len(self.running)

    @property
    def is_idle(self) -> bool:
        return not self.queued and not self.running

    # ---------- Dispatch ----------
    def push(self, jobs: Union[Job, Iterable[Job]]) -> "DispatchQueue":
        if isinstance(jobs, Job):
            jobs = (jobs,)
        return replace(self, queued=self.queued + tuple(jobs))

    def pop(self) -> Tuple["DispatchQueue", Optional[Job]]:
        if not self.queued:
            return self, None
        head, rest = self.queued[0], self.queued[1:]
        return replace(self, queued=rest), head

    def process(self, store, launch: Optional[Callable[[Job], Any]] = None) -> "DispatchQueue":
        """Start the next queued job if the worker has a free slot.

        The started job is persisted through ``store`` before it is added to
        ``running`` and before ``launch`` hands it to an execution slot.
        A full or empty queue comes back unchanged.
        """
        self.worker.validate()

        if len(self.running) >= self.worker.concurrency:
            return self

        q, job = self.pop()
        if job is None:
            return self

        job = store.update(job.start(ref=uuid.uuid4().hex))
        q = replace(q, running=q.running + (job,))
        if launch is not None:
            launch(job)
        return q

    # ---------- Lookup ----------
    def find(self, value: Any, key: str = "id") -> Optional[Job]:
        """First job whose ``key`` equals ``value``.

        ``value`` comes first because ``key`` is optional and defaults to the
        job id: ``q.find(42)`` or ``q.find("failed", key="status")``.

        Execution refs only exist on started jobs, so a ``ref`` lookup
        searches ``running`` alone.
        """
        if key == "ref":
            pools = (self.running,)
        else:
            pools = (self.queued, self.running)
        for pool in pools:
            for job in pool:
                if getattr(job, key, None) == value:
                    return job
        return None

    def update(self, job: Job) -> "DispatchQueue":
        i = _index_of(self.queued, job.id)
        if i is not None:
            return replace(self, queued=_replace_at(self.queued, i, job))

        i = _index_of(self.running, job.id)
        if i is not None:
            return replace(self, running=_replace_at(self.running, i, job))

        raise JobNotFound(f"Job not found in Queue: {job.id}")

    def remove(self, job: Job) -> "DispatchQueue":
        i = _index_of(self.running, job.id)
        if i is None:
            raise JobNotFound(f"Job not found in Queue: {job.id}")
        return replace(self, running=self.running[:i] + self.running[i + 1:])


def _index_of(jobs: Tuple[Job, ...], job_id) -> Optional[int]:
    for i, job in enumerate(jobs):
        if job.id == job_id:
            return i
    return None


def _replace_at(jobs: Tuple[Job, ...], i: int, job: Job) -> Tuple[Job, ...]:
    return jobs[:i] + (job,) + jobs[i + 1:]
