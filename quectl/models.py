from dataclasses import dataclass, replace
from typing import Any, Optional

from .errors import InvalidJobTransition

# Job statuses
QUEUED = "queued"
STARTED = "started"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (QUEUED, STARTED, COMPLETED, FAILED)
INCOMPLETE = (QUEUED, STARTED)
TERMINAL = (COMPLETED, FAILED)


@dataclass(frozen=True)
class Job:
    """One unit of work for a worker type.

    Records are immutable; the transition helpers below return a new record
    and refuse any move the lifecycle does not allow:

        queued -> started -> completed | failed

    ``ref`` identifies the in-flight execution and is only set while the
    job is started.
    """
    worker: str
    arguments: Any = None
    id: Optional[int] = None
    status: str = QUEUED
    ref: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def new(cls, worker: str, arguments: Any = None) -> "Job":
        return cls(worker=worker, arguments=arguments)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def start(self, ref: str) -> "Job":
        self._expect(QUEUED, STARTED)
        if not ref:
            raise InvalidJobTransition("A started job needs an execution ref")
        return replace(self, status=STARTED, ref=ref)

    def complete(self) -> "Job":
        self._expect(STARTED, COMPLETED)
        return replace(self, status=COMPLETED, ref=None)

    def fail(self, error: Any = None) -> "Job":
        self._expect(STARTED, FAILED)
        return replace(self, status=FAILED, ref=None, error=_describe(error))

    def requeue(self) -> "Job":
        # recovery only: a started job whose process died goes back in line
        if self.status not in INCOMPLETE:
            raise InvalidJobTransition(
                f"Job {self.id} is {self.status}, only incomplete jobs can be requeued"
            )
        return replace(self, status=QUEUED, ref=None)

    def _expect(self, current: str, target: str):
        if self.status != current:
            raise InvalidJobTransition(
                f"Job {self.id} cannot move from {self.status} to {target}"
            )


def _describe(error: Any) -> Optional[str]:
    if error is None:
        return None
    if isinstance(error, BaseException):
        return f"{type(error).__name__}: {error}"
    return str(error)
