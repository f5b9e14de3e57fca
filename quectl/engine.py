import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Union

from .config import Config
from .coordinator import QueueCoordinator
from .errors import UnknownWorker
from .models import Job
from .queue import DispatchQueue
from .store import JobOrId, Store, build_store
from .worker import Worker

logger = logging.getLogger(__name__)

WorkerRef = Union[Worker, str]


class Engine:
    """Table of worker types and their coordinators, plus the shared store.

    The host application owns the engine: it registers workers, calls
    ``start()`` once at boot (which recovers unfinished jobs from the store)
    and ``shutdown()`` on exit.
    """

    def __init__(self, store: Store, workers: Iterable[Worker] = ()):
        self.store = store
        self._coordinators: Dict[str, QueueCoordinator] = OrderedDict()
        self._started = False
        for w in workers:
            self.register(w)

    @classmethod
    def from_config(cls, config: Optional[Config] = None, workers: Iterable[Worker] = ()) -> "Engine":
        return cls(build_store(config or Config()), workers)

    @property
    def workers(self) -> List[str]:
        return list(self._coordinators)

    def register(self, worker: Worker) -> QueueCoordinator:
        worker.validate()
        if worker.name in self._coordinators:
            raise ValueError(f"Worker {worker.name!r} is already registered")
        coordinator = QueueCoordinator(worker, self.store)
        self._coordinators[worker.name] = coordinator
        if self._started:
            coordinator.start()
        return coordinator

    def coordinator(self, worker: WorkerRef) -> QueueCoordinator:
        name = worker.name if isinstance(worker, Worker) else worker
        try:
            return self._coordinators[name]
        except KeyError:
            raise UnknownWorker(f"No worker registered as {name!r}") from None

    # ---------- Lifecycle ----------
    def setup_store(self):
        self.store.setup()

    def initialize_store(self):
        self.store.initialize()

    def start(self, recover: bool = True) -> "Engine":
        self.initialize_store()
        for coordinator in self._coordinators.values():
            coordinator.start()
        self._started = True
        if recover:
            self.recover()
        return self

    def shutdown(self, timeout: Optional[float] = None):
        for coordinator in self._coordinators.values():
            coordinator.stop(timeout)
        self._coordinators.clear()
        self._started = False
        self.store.close()

    def recover(self) -> int:
        """Queue every job the store still has as queued or started."""
        grouped: Dict[str, List[Job]] = OrderedDict()
        for job in self.store.find_incomplete():
            grouped.setdefault(job.worker, []).append(job)

        resumed = 0
        for name, jobs in grouped.items():
            coordinator = self._coordinators.get(name)
            if coordinator is None:
                logger.warning("Skipping %d incomplete job(s) for unregistered worker %s",
                               len(jobs), name)
                continue
            coordinator.resume(jobs)
            resumed += len(jobs)

        if resumed:
            logger.info("Recovered %d incomplete job(s)", resumed)
        return resumed

    # ---------- Jobs ----------
    def enqueue(self, worker: WorkerRef, arguments: Any = None) -> int:
        coordinator = self.coordinator(worker)
        job = coordinator.push(Job.new(coordinator.name, arguments))
        logger.debug("Enqueued job %s for %s", job.id, coordinator.name)
        return job.id

    def queue(self, worker: WorkerRef) -> DispatchQueue:
        return self.coordinator(worker).snapshot()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return all(c.wait_idle(timeout) for c in self._coordinators.values())

    # ---------- Queries ----------
    def find_all(self) -> List[Job]:
        return self.store.find_all()

    def find_completed(self) -> List[Job]:
        return self.store.find_completed()

    def find_incomplete(self) -> List[Job]:
        return self.store.find_incomplete()

    def find_failed(self) -> List[Job]:
        return self.store.find_failed()

    def find_for_worker(self, worker: WorkerRef) -> List[Job]:
        name = worker.name if isinstance(worker, Worker) else worker
        return self.store.find_for_worker(name)

    def find(self, job: JobOrId) -> Optional[Job]:
        return self.store.find(job)

    def __enter__(self) -> "Engine":
        return self.start()

    def __exit__(self, *exc):
        self.shutdown()
