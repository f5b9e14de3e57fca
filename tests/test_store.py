"""
Contract tests every job store must pass, plus durable-store recovery.
"""

import sqlite3

import pytest

from quectl.config import Config
from quectl.db import SQLiteStore
from quectl.errors import StoreError
from quectl.models import COMPLETED, FAILED, QUEUED, STARTED, Job
from quectl.store import MemoryStore, build_store


def seed(store):
    """One job in every status, for two workers."""
    a = store.insert(Job.new("alpha", {"n": 1}))
    b = store.insert(Job.new("alpha", {"n": 2}))
    c = store.insert(Job.new("beta", [1, 2]))
    d = store.insert(Job.new("beta", "x"))
    b = store.update(b.start("rb"))
    c = store.update(c.start("rc").complete())
    d = store.update(d.start("rd").fail("bad input"))
    return a, b, c, d


class TestStoreContract:

    def test_insert_assigns_identity_and_timestamps(self, store):
        job = store.insert(Job.new("alpha", {"path": "/tmp/x"}))

        assert job.id == 1
        assert job.created_at
        assert job.updated_at >= job.created_at

    def test_insert_then_find_round_trip(self, store):
        original = Job.new("alpha", {"path": "/tmp/x", "sizes": [1, 2]})
        stored = store.insert(original)
        found = store.find(stored.id)

        assert found == stored
        assert found.worker == original.worker
        assert found.arguments == original.arguments
        assert found.status == original.status

    def test_stored_arguments_are_isolated_from_caller(self, store):
        payload = {"n": 1, "tags": ["a"]}
        job = store.insert(Job.new("alpha", payload))
        payload["n"] = 999
        payload["tags"].append("b")

        found = store.find(job.id)
        found.arguments["n"] = 500
        job.arguments["tags"].append("c")

        assert store.find(job.id).arguments == {"n": 1, "tags": ["a"]}

    def test_find_missing_returns_none(self, store):
        assert store.find(99) is None
        assert store.find(Job(worker="alpha", id=99)) is None

    def test_find_accepts_job(self, store):
        job = store.insert(Job.new("alpha"))
        assert store.find(job) == job

    def test_ids_are_monotonic_and_never_reused(self, store):
        first = store.insert(Job.new("alpha"))
        second = store.insert(Job.new("alpha"))
        store.destroy(second)
        third = store.insert(Job.new("alpha"))

        assert first.id < second.id < third.id

    def test_update_keeps_created_at(self, store):
        job = store.insert(Job.new("alpha"))
        updated = store.update(job.start("r"))

        assert updated.id == job.id
        assert updated.status == STARTED
        assert updated.ref == "r"
        assert updated.created_at == job.created_at
        assert updated.updated_at >= job.updated_at

    def test_update_without_id_inserts(self, store):
        job = store.update(Job.new("alpha"))
        assert job.id is not None
        assert store.find(job.id) == job

    def test_update_with_new_identity_upserts(self, store):
        job = store.update(Job(worker="alpha", id=10))
        after = store.insert(Job.new("alpha"))

        assert store.find(10) == job
        assert after.id > 10

    def test_destroy(self, store):
        job = store.insert(Job.new("alpha"))
        store.destroy(job)
        assert store.find(job.id) is None

    def test_destroy_by_id_and_missing(self, store):
        job = store.insert(Job.new("alpha"))
        store.destroy(job.id)
        store.destroy(job.id)
        store.destroy(12345)
        assert store.find_all() == []

    def test_status_queries(self, store):
        a, b, c, d = seed(store)

        assert store.find_all() == [a, b, c, d]
        assert store.find_incomplete() == [a, b]
        assert store.find_completed() == [c]
        assert store.find_failed() == [d]
        assert store.find_failed()[0].error == "bad input"

    def test_find_for_worker(self, store):
        a, b, c, d = seed(store)

        assert store.find_for_worker("alpha") == [a, b]
        assert store.find_for_worker("beta") == [c, d]
        assert store.find_for_worker("gamma") == []

    def test_count_by_status(self, store):
        seed(store)
        store.insert(Job.new("alpha"))

        assert store.count_by_status() == {QUEUED: 2, STARTED: 1, COMPLETED: 1, FAILED: 1}

    def test_initialize_is_idempotent(self, store):
        store.insert(Job.new("alpha"))
        store.initialize()
        store.initialize()

        assert len(store.find_all()) == 1


class TestSQLiteStore:

    def test_setup_creates_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "jobs.db"
        store = SQLiteStore(str(path))
        store.setup()
        store.setup()
        store.close()

        assert path.exists()

    def test_restart_keeps_incomplete_jobs(self, tmp_path):
        path = str(tmp_path / "jobs.db")
        store = SQLiteStore(path)
        store.setup()
        first = store.update(store.insert(Job.new("alpha", 1)).start("r1"))
        second = store.update(store.insert(Job.new("alpha", 2)).start("r2"))
        store.update(store.insert(Job.new("alpha", 3)).start("r3").complete())
        store.close()

        reopened = SQLiteStore(path)
        reopened.initialize()
        reopened.initialize()
        incomplete = reopened.find_incomplete()
        reopened.close()

        assert [j.id for j in incomplete] == [first.id, second.id]
        assert all(j.status == STARTED for j in incomplete)

    def test_ids_not_reused_after_restart(self, tmp_path):
        path = str(tmp_path / "jobs.db")
        store = SQLiteStore(path)
        store.setup()
        last = store.insert(Job.new("alpha"))
        store.destroy(last)
        store.close()

        reopened = SQLiteStore(path)
        reopened.initialize()
        fresh = reopened.insert(Job.new("alpha"))
        reopened.close()

        assert fresh.id > last.id

    def test_unserialisable_arguments_raise_store_error(self, sqlite_store):
        with pytest.raises(StoreError, match="JSON"):
            sqlite_store.insert(Job.new("alpha", object()))
        assert sqlite_store.find_all() == []

    def test_sqlite_errors_are_wrapped(self, sqlite_store):
        sqlite_store.conn.execute("DROP TABLE jobs")

        with pytest.raises(StoreError) as info:
            sqlite_store.find_all()
        assert isinstance(info.value.__cause__, sqlite3.Error)

    def test_lazy_connection(self, tmp_path):
        store = SQLiteStore(str(tmp_path / "lazy.db"))
        job = store.insert(Job.new("alpha"))
        assert store.find(job.id) == job
        store.close()


class TestBuildStore:

    def test_memory(self):
        assert isinstance(build_store(Config(store="memory")), MemoryStore)

    def test_durable(self, tmp_path):
        store = build_store(Config(store="durable", db_path=str(tmp_path / "q.db")))
        assert isinstance(store, SQLiteStore)
        assert store.path == str(tmp_path / "q.db")
