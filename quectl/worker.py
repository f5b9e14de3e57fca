from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import InvalidWorkerConfiguration


@dataclass(frozen=True)
class Worker:
    """A worker type: what to run for its jobs and how many may run at once.

    ``perform`` receives the job's arguments. ``on_success(job)`` and
    ``on_failure(job, error)`` are called by the coordinator once the
    outcome has been persisted.
    """
    name: str
    perform: Callable[[Any], Any]
    concurrency: int = 1
    on_success: Optional[Callable] = None
    on_failure: Optional[Callable] = None

    def validate(self) -> "Worker":
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidWorkerConfiguration("Worker name cannot be empty.")
        if not callable(self.perform):
            raise InvalidWorkerConfiguration(f"Worker {self.name!r} has no callable perform")
        # bool is an int subclass; True is not a concurrency
        if (not isinstance(self.concurrency, int) or isinstance(self.concurrency, bool)
                or self.concurrency < 1):
            raise InvalidWorkerConfiguration(
                f"Worker {self.name!r} concurrency must be a positive integer, "
                f"got {self.concurrency!r}"
            )
        for hook in ("on_success", "on_failure"):
            fn = getattr(self, hook)
            if fn is not None and not callable(fn):
                raise InvalidWorkerConfiguration(f"Worker {self.name!r} {hook} is not callable")
        return self


def worker(name: Optional[str] = None, *, concurrency: int = 1,
           on_success: Optional[Callable] = None,
           on_failure: Optional[Callable] = None):
    """Decorator turning a function into a ``Worker``.

        @worker(concurrency=4)
        def resize_image(arguments):
            ...
    """
    def wrap(fn: Callable) -> Worker:
        return Worker(
            name=name or fn.__name__,
            perform=fn,
            concurrency=concurrency,
            on_success=on_success,
            on_failure=on_failure,
        ).validate()
    return wrap
