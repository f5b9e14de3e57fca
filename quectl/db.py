import json
import logging
import os
import sqlite3
import threading
from typing import Dict, List, Optional

from .errors import StoreError
from .models import STATUSES, Job
from .store import JobOrId, Store, job_id_of
from .utils import now_iso

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"

# AUTOINCREMENT keeps ids from being reused after a delete or a restart
SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    worker TEXT NOT NULL,
    arguments TEXT,
    status TEXT NOT NULL,
    ref TEXT,
    error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_worker ON jobs(worker);
"""

COLUMNS = "id, worker, arguments, status, ref, error, created_at, updated_at"


class SQLiteStore(Store):
    """Durable job store backed by a single SQLite file.

    ``setup()`` creates the directory and schema, ``initialize()`` opens the
    file (creating the schema if missing). Both can be called any number of
    times. One connection is shared and guarded by a lock, so writers are
    serialised and readers never see half a write.
    """

    def __init__(self, path: str = "quectl.db", timeout: float = 30.0):
        self.path = str(path)
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    # ---------- Lifecycle ----------
    def setup(self):
        if self.path != IN_MEMORY:
            directory = os.path.dirname(os.path.abspath(self.path))
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise StoreError(f"Could not create database directory {directory}: {e}") from e
        self.initialize()
        logger.info("Job store ready at %s", self.path)

    def initialize(self):
        with self._lock:
            if self._conn is None:
                self._conn = self._connect()
            self._run("schema", self._conn.executescript, SCHEMA)

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.path, timeout=self.timeout, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if self.path != IN_MEMORY:
                conn.execute("PRAGMA journal_mode=WAL;")
            return conn
        except sqlite3.Error as e:
            raise StoreError(f"DB error while opening {self.path}: {e}") from e

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.initialize()
        return self._conn

    def _run(self, action: str, fn, *args):
        try:
            return fn(*args)
        except sqlite3.Error as e:
            raise StoreError(f"DB error during {action}: {e}") from e

    def _select(self, where: str = "", params=()) -> List[Job]:
        sql = f"SELECT {COLUMNS} FROM jobs {where} ORDER BY id ASC"
        with self._lock:
            rows = self._run("select", lambda: self.conn.execute(sql, params).fetchall())
        return [_row_to_job(r) for r in rows]

    # ---------- Queries ----------
    def find_all(self) -> List[Job]:
        return self._select()

    def find_by_status(self, *statuses: str) -> List[Job]:
        if not statuses:
            return []
        marks = ",".join("?" for _ in statuses)
        return self._select(f"WHERE status IN ({marks})", statuses)

    def find_for_worker(self, worker: str) -> List[Job]:
        return self._select("WHERE worker=?", (worker,))

    def find(self, job: JobOrId) -> Optional[Job]:
        found = self._select("WHERE id=?", (job_id_of(job),))
        return found[0] if found else None

    def count_by_status(self) -> Dict[str, int]:
        out = {s: 0 for s in STATUSES}
        with self._lock:
            rows = self._run("count", lambda: self.conn.execute(
                "SELECT status, COUNT(1) AS c FROM jobs GROUP BY status"
            ).fetchall())
        for r in rows:
            out[r["status"]] = r["c"]
        return out

    # ---------- Writes ----------
    def insert(self, job: Job) -> Job:
        ts = now_iso()
        args = _dump_arguments(job)

        def write():
            with self.conn:
                cur = self.conn.execute(
                    """INSERT INTO jobs (worker, arguments, status, ref, error, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (job.worker, args, job.status, job.ref, job.error, ts, ts),
                )
                return cur.lastrowid

        with self._lock:
            new_id = self._run("insert", write)
            return self.find(new_id)

    def update(self, job: Job) -> Job:
        if job.id is None:
            return self.insert(job)
        ts = now_iso()
        args = _dump_arguments(job)

        def write():
            with self.conn:
                self.conn.execute(
                    """INSERT INTO jobs (id, worker, arguments, status, ref, error, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(id) DO UPDATE SET
                           worker=excluded.worker,
                           arguments=excluded.arguments,
                           status=excluded.status,
                           ref=excluded.ref,
                           error=excluded.error,
                           updated_at=excluded.updated_at""",
                    (job.id, job.worker, args, job.status, job.ref, job.error,
                     job.created_at or ts, ts),
                )

        with self._lock:
            self._run("update", write)
            return self.find(job.id)

    def destroy(self, job: JobOrId):
        def write():
            with self.conn:
                self.conn.execute("DELETE FROM jobs WHERE id=?", (job_id_of(job),))

        with self._lock:
            self._run("destroy", write)


def _dump_arguments(job: Job) -> str:
    try:
        return json.dumps(job.arguments)
    except (TypeError, ValueError) as e:
        raise StoreError(f"Arguments of job {job.id} are not JSON-serialisable: {e}") from e


def _row_to_job(row: sqlite3.Row) -> Job:
    raw = row["arguments"]
    return Job(
        id=row["id"],
        worker=row["worker"],
        arguments=json.loads(raw) if raw is not None else None,
        status=row["status"],
        ref=row["ref"],
        error=row["error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
