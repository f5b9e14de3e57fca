import logging
import threading
from queue import Queue
from typing import Iterable, List, Optional

from .errors import StoreError
from .models import STARTED, Job
from .queue import DispatchQueue
from .store import Store
from .worker import Worker

logger = logging.getLogger(__name__)

# inbox message kinds
PUSH = "push"
RESUME = "resume"
DONE = "done"
FAILED = "failed"
STOP = "stop"


class QueueCoordinator:
    """Sole owner of one worker type's DispatchQueue.

    Callers post messages to an inbox; a single thread drains it and is the
    only code that replaces the queue or writes job status. Each dispatched
    job runs ``perform`` on its own thread and reports back through the same
    inbox, so the coordinator never waits on a running job.
    """

    def __init__(self, worker: Worker, store: Store):
        self.worker = worker.validate()
        self.store = store
        self._queue = DispatchQueue.new(worker)
        self._inbox: Queue = Queue()
        self._thread: Optional[threading.Thread] = None
        self._cond = threading.Condition()
        self._pending = 0

    @property
    def name(self) -> str:
        return self.worker.name

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ---------- Lifecycle ----------
    def start(self) -> "QueueCoordinator":
        if self.is_running:
            return self
        self._thread = threading.Thread(
            target=self._loop, name=f"quectl-{self.name}", daemon=True
        )
        self._thread.start()
        logger.debug("Coordinator for %s started", self.name)
        return self

    def stop(self, timeout: Optional[float] = None):
        """Stop dispatching. Jobs already executing are not interrupted."""
        if not self.is_running:
            return
        self._inbox.put((STOP,))
        self._thread.join(timeout)
        self._thread = None
        logger.debug("Coordinator for %s stopped", self.name)

    # ---------- Public API ----------
    def push(self, job: Job) -> Job:
        """Persist a new job and queue it. Returns the stored record."""
        if job.worker != self.name:
            raise ValueError(f"Job for {job.worker!r} pushed to {self.name!r} coordinator")
        if job.id is None:
            job = self.store.insert(job)
        self._post(PUSH, [job])
        return job

    def resume(self, jobs: Iterable[Job]):
        """Queue jobs recovered from the store after a restart."""
        jobs = list(jobs)
        if jobs:
            self._post(RESUME, jobs)

    def snapshot(self) -> DispatchQueue:
        return self._queue

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no message is pending and no job is queued or running."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._pending == 0 and self._queue.is_idle, timeout
            )

    # ---------- Inbox ----------
    def _post(self, *message):
        with self._cond:
            self._pending += 1
        self._inbox.put(message)

    def _loop(self):
        while True:
            message = self._inbox.get()
            kind = message[0]
            if kind == STOP:
                break
            try:
                self._handle(kind, *message[1:])
            except Exception:
                logger.exception("Coordinator for %s failed handling %s", self.name, kind)
            finally:
                with self._cond:
                    self._pending -= 1
                    self._cond.notify_all()

    def _handle(self, kind: str, *payload):
        if kind == PUSH:
            self._queue = self._queue.push(payload[0])
        elif kind == RESUME:
            self._queue = self._queue.push(self._requeue(payload[0]))
        elif kind == DONE:
            self._finish(payload[0])
        elif kind == FAILED:
            self._finish(payload[0], payload[1])
        else:
            raise ValueError(f"Unknown message {kind!r}")
        self._dispatch()

    def _requeue(self, jobs: List[Job]) -> List[Job]:
        out = []
        for job in jobs:
            # the store is authoritative; skip anything finished or already queued here
            job = self.store.find(job)
            if job is None or job.is_terminal or self._queue.find(job.id) is not None:
                continue
            if job.status == STARTED:
                logger.warning("Job %s was interrupted while running, queueing it again", job.id)
                job = self.store.update(job.requeue())
            out.append(job)
        return out

    # ---------- Dispatch ----------
    def _dispatch(self):
        while True:
            q = self._queue.process(self.store, self._launch)
            if q is self._queue:
                return
            self._queue = q

    def _launch(self, job: Job):
        threading.Thread(
            target=self._execute, args=(job,), name=f"{self.name}-{job.id}", daemon=True
        ).start()

    def _execute(self, job: Job):
        logger.info("Starting job %s for %s with %r", job.id, self.name, job.arguments)
        try:
            self.worker.perform(job.arguments)
        except BaseException as e:
            # SystemExit and friends still have to free the slot
            logger.error("Job %s for %s failed", job.id, self.name, exc_info=True)
            self._post(FAILED, job.ref, e)
        else:
            logger.info("Completed job %s for %s", job.id, self.name)
            self._post(DONE, job.ref)

    def _finish(self, ref: str, error: Optional[BaseException] = None):
        job = self._queue.find(ref, key="ref")
        if job is None:
            logger.warning("No running job of %s matches execution ref %s", self.name, ref)
            return

        running = job
        job = job.complete() if error is None else job.fail(error)
        try:
            job = self.store.update(job)
        except StoreError:
            # the record stays started in the store, so recover() runs it again
            logger.exception("Could not persist outcome of job %s for %s", job.id, self.name)
            self._queue = self._queue.remove(running)
            return
        self._queue = self._queue.update(job).remove(job)

        if error is None:
            self._callback(self.worker.on_success, job)
        else:
            self._callback(self.worker.on_failure, job, error)

    def _callback(self, fn, *args):
        if fn is None:
            return
        try:
            fn(*args)
        except Exception:
            logger.exception("Callback %s of %s raised", getattr(fn, "__name__", fn), self.name)
