"""
Job Store - SQLite-backed record of job state and history.

GUARANTEES:
-----------
- Every write runs in its own transaction under a single lock
- Terminal jobs (completed / error) are never modified again
- Progress never moves backwards while a job is processing
- History is append-only

Schema version is tracked with PRAGMA user_version; a mismatch fails loudly.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Union

from .errors import DuplicateIdError, NotFoundError, StoreError, TerminalStateError
from .jobs import (
    TERMINAL_STATUSES,
    HistoryEntry,
    Job,
    JobStatus,
    Outcome,
    StyleConfig,
    utc_now,
)

logger = logging.getLogger("quickedit")

STORE_SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    progress INTEGER NOT NULL DEFAULT 0,
    current_step TEXT NOT NULL DEFAULT '',
    style TEXT NOT NULL,
    intensity TEXT NOT NULL,
    quality TEXT NOT NULL,
    source_ref TEXT NOT NULL,
    output_ref TEXT,
    message TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS job_history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL,
    step TEXT NOT NULL,
    outcome TEXT NOT NULL,
    message TEXT NOT NULL DEFAULT '',
    timestamp TEXT NOT NULL,
    FOREIGN KEY (job_id) REFERENCES jobs (id)
);
CREATE INDEX IF NOT EXISTS idx_job_history_job ON job_history (job_id, seq);
"""


def _row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        status=JobStatus(row["status"]),
        progress=row["progress"],
        current_step=row["current_step"],
        style_config=StyleConfig(
            style=row["style"], intensity=row["intensity"], quality=row["quality"],
        ),
        source_ref=row["source_ref"],
        output_ref=row["output_ref"],
        message=row["message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobStore:
    """
    Durable job table.

    Args:
        db_path: SQLite file path, or ":memory:" for an in-process store.
                 Parent directories are created if needed.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._init_schema()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open job store at {self.db_path}: {e}") from e

    def _init_schema(self) -> None:
        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if version not in (0, STORE_SCHEMA_VERSION):
            raise StoreError(
                f"Job store schema version {version} does not match "
                f"expected {STORE_SCHEMA_VERSION}"
            )
        with self._conn:
            self._conn.executescript(_SCHEMA)
            self._conn.execute(f"PRAGMA user_version = {STORE_SCHEMA_VERSION}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------
    def _fetch(self, job_id: str) -> sqlite3.Row:
        row = self._conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            raise NotFoundError(job_id)
        return row

    def _fetch_writable(self, job_id: str) -> sqlite3.Row:
        row = self._fetch(job_id)
        if JobStatus(row["status"]) in TERMINAL_STATUSES:
            raise TerminalStateError(job_id, row["status"])
        return row

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, job: Job) -> Job:
        """Insert a new job. Raises DuplicateIdError if the id exists."""
        now = utc_now()
        cfg = job.style_config
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO jobs (id, status, progress, current_step, style,
                            intensity, quality, source_ref, output_ref, message,
                            created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (job.id, job.status.value, job.progress, job.current_step,
                         cfg.style, cfg.intensity, cfg.quality, job.source_ref,
                         job.output_ref, job.message, job.created_at, now),
                    )
            except sqlite3.IntegrityError as e:
                raise DuplicateIdError(job.id) from e
            return _row_to_job(self._fetch(job.id))

    def claim(self, job_id: str, step: str = "Starting") -> Job:
        """Move a queued job to processing. Already-processing jobs are returned as-is."""
        with self._lock:
            row = self._fetch_writable(job_id)
            if row["status"] == JobStatus.QUEUED.value:
                with self._conn:
                    self._conn.execute(
                        "UPDATE jobs SET status = ?, current_step = ?, updated_at = ? WHERE id = ?",
                        (JobStatus.PROCESSING.value, step, utc_now(), job_id),
                    )
            return _row_to_job(self._fetch(job_id))

    def update_progress(self, job_id: str, progress: int, step: str) -> Job:
        """
        Record stage progress.

        Progress must be 0-99 (100 is reserved for completion) and is stored
        as the maximum of the old and new values.

        Raises:
            NotFoundError, TerminalStateError, ValueError
        """
        progress = int(progress)
        if not 0 <= progress < 100:
            raise ValueError(f"Progress must be between 0 and 99, got {progress}")
        with self._lock:
            self._fetch_writable(job_id)
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE jobs SET status = ?, progress = MAX(progress, ?),
                        current_step = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (JobStatus.PROCESSING.value, progress, step, utc_now(), job_id),
                )
            return _row_to_job(self._fetch(job_id))

    def mark_completed(self, job_id: str, output_ref: str, step: str = "Completed") -> Job:
        if not output_ref:
            raise ValueError("A completed job requires an output reference")
        with self._lock:
            self._fetch_writable(job_id)
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE jobs SET status = ?, progress = 100, current_step = ?,
                        output_ref = ?, message = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (JobStatus.COMPLETED.value, step, output_ref,
                     "Processing completed successfully", utc_now(), job_id),
                )
            return _row_to_job(self._fetch(job_id))

    def mark_error(self, job_id: str, message: str, step: str = "Failed") -> Job:
        with self._lock:
            self._fetch_writable(job_id)
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE jobs SET status = ?, current_step = ?, output_ref = NULL,
                        message = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (JobStatus.ERROR.value, step, message or "Processing failed",
                     utc_now(), job_id),
                )
            return _row_to_job(self._fetch(job_id))

    def fail_interrupted(self, message: str = "Processing was interrupted") -> List[str]:
        """Mark jobs left queued/processing by a previous process as errored."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT id FROM jobs WHERE status IN (?, ?)",
                (JobStatus.QUEUED.value, JobStatus.PROCESSING.value),
            ).fetchall()
            ids = [r["id"] for r in rows]
            if ids:
                now = utc_now()
                with self._conn:
                    self._conn.executemany(
                        """
                        UPDATE jobs SET status = ?, current_step = ?, message = ?, updated_at = ?
                        WHERE id = ?
                        """,
                        [(JobStatus.ERROR.value, "Interrupted", message, now, jid) for jid in ids],
                    )
                    self._conn.executemany(
                        """
                        INSERT INTO job_history (job_id, step, outcome, message, timestamp)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        [(jid, "recovery", Outcome.ERROR.value, message, now) for jid in ids],
                    )
        if ids:
            logger.warning(f"Marked {len(ids)} interrupted job(s) as error")
        return ids

    def add_history(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._fetch(entry.job_id)
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO job_history (job_id, step, outcome, message, timestamp)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (entry.job_id, entry.step, entry.outcome.value, entry.message, entry.timestamp),
                )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, job_id: str) -> Job:
        with self._lock:
            return _row_to_job(self._fetch(job_id))

    def list_jobs(self, limit: int = 100, status: Optional[JobStatus] = None) -> List[Job]:
        query = "SELECT * FROM jobs"
        params: list = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(JobStatus(status).value)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(int(limit))
        with self._lock:
            return [_row_to_job(r) for r in self._conn.execute(query, params).fetchall()]

    def history(self, job_id: str) -> List[HistoryEntry]:
        with self._lock:
            self._fetch(job_id)
            rows = self._conn.execute(
                "SELECT * FROM job_history WHERE job_id = ? ORDER BY seq",
                (job_id,),
            ).fetchall()
        return [
            HistoryEntry(
                job_id=r["job_id"], step=r["step"], outcome=Outcome(r["outcome"]),
                message=r["message"], timestamp=r["timestamp"],
            )
            for r in rows
        ]
