"""
Job Store
=========
Persistence interface consumed by the orchestrator, with an in-memory
implementation (tests, one-shot CLI runs) and a SQLite implementation.

Both implementations enforce the job invariants themselves:

- a terminal job is immutable (``JobStateError`` on any update)
- status changes follow ``models.TRANSITIONS``
- a page URL is unique within its job (duplicate appends return the
  existing page id)

Usage::

    store = SQLiteJobStore("data/scrapegoat.db")
    store.create_job(Job(id=new_job_id(), url="https://example.com/"))
"""

from __future__ import annotations

import copy
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from .errors import JobStateError
from .models import Job, JobOptions, JobStatus, Page, can_transition, utc_now

logger = logging.getLogger(__name__)

_JOB_FIELDS = {"status", "progress", "total_pages", "processed_pages", "archive_path", "error"}


class JobStore(Protocol):
    """Operations the core needs from the persistence layer."""

    def create_job(self, job: Job) -> Job: ...

    def get_job(self, job_id: str) -> Optional[Job]: ...

    def update_job(self, job_id: str, **fields) -> Job: ...

    def add_page(self, job_id: str, url: str, title: Optional[str] = None) -> int: ...

    def update_page(self, page_id: int, document_path: str) -> None: ...

    def list_pages(self, job_id: str) -> List[Page]: ...


def _apply_update(job: Job, fields: dict) -> Job:
    """Validate *fields* against *job* and return the updated copy."""
    unknown = set(fields) - _JOB_FIELDS
    if unknown:
        raise ValueError(f"Unknown job fields: {sorted(unknown)}")

    if job.status.is_terminal:
        raise JobStateError(f"Job {job.id} is {job.status.value} and can no longer change")

    updated = copy.deepcopy(job)
    if "status" in fields:
        target = JobStatus(fields["status"])
        if not can_transition(job.status, target):
            raise JobStateError(
                f"Illegal transition for job {job.id}: {job.status.value} -> {target.value}"
            )
        updated.status = target
        if target.is_terminal:
            updated.completed_at = utc_now()

    for name, value in fields.items():
        if name != "status":
            setattr(updated, name, value)
    return updated


class MemoryJobStore:
    """Thread-safe, process-local store."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._pages: Dict[int, Page] = {}
        self._next_page_id = 1
        self._lock = threading.Lock()

    def create_job(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)
            return copy.deepcopy(job)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def update_job(self, job_id: str, **fields) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            updated = _apply_update(job, fields)
            self._jobs[job_id] = updated
            return copy.deepcopy(updated)

    def add_page(self, job_id: str, url: str, title: Optional[str] = None) -> int:
        with self._lock:
            if job_id not in self._jobs:
                raise KeyError(job_id)
            for page in self._pages.values():
                if page.job_id == job_id and page.url == url:
                    return page.id
            page_id = self._next_page_id
            self._next_page_id += 1
            self._pages[page_id] = Page(id=page_id, job_id=job_id, url=url, title=title)
            return page_id

    def update_page(self, page_id: int, document_path: str) -> None:
        with self._lock:
            page = self._pages.get(page_id)
            if page is None:
                raise KeyError(page_id)
            page.document_path = document_path
            page.processed_at = utc_now()

    def list_pages(self, job_id: str) -> List[Page]:
        with self._lock:
            return [
                copy.deepcopy(p) for p in sorted(self._pages.values(), key=lambda p: p.id)
                if p.job_id == job_id
            ]


_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    progress INTEGER DEFAULT 0,
    total_pages INTEGER DEFAULT 0,
    processed_pages INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    completed_at TEXT,
    archive_path TEXT,
    error TEXT,
    follow_all_domains INTEGER DEFAULT 0,
    include_images INTEGER DEFAULT 0,
    single_page_only INTEGER DEFAULT 0,
    content_selector TEXT,
    notify_destination TEXT
);

CREATE TABLE IF NOT EXISTS pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    url TEXT NOT NULL,
    title TEXT,
    document_path TEXT,
    processed_at TEXT,
    UNIQUE (job_id, url)
);
"""


class SQLiteJobStore:
    """
    SQLite-backed store. One connection guarded by a lock, so writes for a
    job row are serialised across job threads.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        path = str(db_path)
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        self._lock = threading.Lock()
        logger.info(f"[STORE] SQLite store ready at {path}")

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"],
            url=row["url"],
            options=JobOptions(
                follow_all_domains=bool(row["follow_all_domains"]),
                include_images=bool(row["include_images"]),
                single_page_only=bool(row["single_page_only"]),
                content_selector=row["content_selector"],
                notify_destination=row["notify_destination"],
            ),
            status=JobStatus(row["status"]),
            progress=row["progress"],
            total_pages=row["total_pages"],
            processed_pages=row["processed_pages"],
            archive_path=row["archive_path"],
            error=row["error"],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
        )

    @staticmethod
    def _row_to_page(row: sqlite3.Row) -> Page:
        return Page(
            id=row["id"],
            job_id=row["job_id"],
            url=row["url"],
            title=row["title"],
            document_path=row["document_path"],
            processed_at=row["processed_at"],
        )

    def _get_job(self, job_id: str) -> Optional[Job]:
        row = self._conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def create_job(self, job: Job) -> Job:
        opts = job.options
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO jobs (id, url, status, progress, total_pages, processed_pages, "
                "created_at, completed_at, archive_path, error, follow_all_domains, "
                "include_images, single_page_only, content_selector, notify_destination) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    job.id, job.url, job.status.value, job.progress, job.total_pages,
                    job.processed_pages, job.created_at, job.completed_at, job.archive_path,
                    job.error, int(opts.follow_all_domains), int(opts.include_images),
                    int(opts.single_page_only), opts.content_selector, opts.notify_destination,
                ),
            )
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._get_job(job_id)

    def update_job(self, job_id: str, **fields) -> Job:
        with self._lock:
            job = self._get_job(job_id)
            if job is None:
                raise KeyError(job_id)
            updated = _apply_update(job, fields)
            with self._conn:
                self._conn.execute(
                    "UPDATE jobs SET status = ?, progress = ?, total_pages = ?, "
                    "processed_pages = ?, archive_path = ?, error = ?, completed_at = ? "
                    "WHERE id = ?",
                    (
                        updated.status.value, updated.progress, updated.total_pages,
                        updated.processed_pages, updated.archive_path, updated.error,
                        updated.completed_at, job_id,
                    ),
                )
            return updated

    def add_page(self, job_id: str, url: str, title: Optional[str] = None) -> int:
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT id FROM pages WHERE job_id = ? AND url = ?", (job_id, url)
            ).fetchone()
            if row:
                return row["id"]
            cursor = self._conn.execute(
                "INSERT INTO pages (job_id, url, title) VALUES (?, ?, ?)",
                (job_id, url, title),
            )
            return cursor.lastrowid

    def update_page(self, page_id: int, document_path: str) -> None:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE pages SET document_path = ?, processed_at = ? WHERE id = ?",
                (document_path, utc_now(), page_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(page_id)

    def list_pages(self, job_id: str) -> List[Page]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM pages WHERE job_id = ? ORDER BY id", (job_id,)
            ).fetchall()
        return [self._row_to_page(r) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
