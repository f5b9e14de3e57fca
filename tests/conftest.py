"""
Shared fixtures for quectl tests.
"""

import threading

import pytest

from quectl.db import SQLiteStore
from quectl.models import Job
from quectl.store import MemoryStore
from quectl.worker import Worker


def noop(arguments):
    return arguments


@pytest.fixture
def test_worker():
    return Worker(name="test_worker", perform=noop)


@pytest.fixture
def concurrent_worker():
    return Worker(name="concurrent_worker", perform=noop, concurrency=4)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteStore(str(tmp_path / "jobs" / "quectl.db"))
    store.setup()
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield MemoryStore()
        return
    s = SQLiteStore(str(tmp_path / "quectl.db"))
    s.setup()
    yield s
    s.close()


@pytest.fixture
def sample_jobs():
    """Six jobs; the fourth (id 'x') is the only failed one."""
    return [
        Job(worker="test_worker", id=1),
        Job(worker="test_worker", id=2),
        Job(worker="test_worker", id=3),
        Job(worker="test_worker", id="x", status="failed"),
        Job(worker="test_worker", id=5),
        Job(worker="test_worker", id=6),
    ]


class Gate:
    """Blocks ``perform`` calls until released, recording what ran."""

    def __init__(self):
        self.release = threading.Event()
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, arguments):
        with self._lock:
            self.calls.append(arguments)
        if not self.release.wait(5):
            raise TimeoutError("gate was never released")
        return arguments


@pytest.fixture
def gate():
    g = Gate()
    yield g
    g.release.set()
