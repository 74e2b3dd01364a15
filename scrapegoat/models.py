"""
Job Data Model
==============
Jobs, their pages and the lifecycle states a job moves through.

    pending ──► crawling ──► processing ──► completed
                   │              │
                   └──► failed ◄──┘

A job is mutated only by the orchestrator and becomes immutable once it
reaches a terminal state (``completed`` or ``failed``).
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    """Lifecycle state of a job."""
    PENDING = "pending"
    CRAWLING = "crawling"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Legal transitions; same-state updates (progress ticks) are always allowed
# for non-terminal states.
TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.CRAWLING},
    JobStatus.CRAWLING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    if current.is_terminal:
        return False
    return target == current or target in TRANSITIONS[current]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_job_id() -> str:
    """Opaque unique job token."""
    return uuid.uuid4().hex


@dataclass
class JobOptions:
    """Scope flags chosen at submission."""
    follow_all_domains: bool = False
    include_images: bool = False
    single_page_only: bool = False
    content_selector: Optional[str] = None
    notify_destination: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "JobOptions":
        """Build from an API-style payload (camelCase or snake_case keys)."""
        data = data or {}

        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        selector = pick("content_selector", "contentSelector")
        return cls(
            follow_all_domains=bool(pick("follow_all_domains", "followAllLinks", False)),
            include_images=bool(pick("include_images", "includeImages", False)),
            single_page_only=bool(pick("single_page_only", "singlePageOnly", False)),
            content_selector=(selector.strip() or None) if isinstance(selector, str) else None,
            notify_destination=pick("notify_destination", "email"),
        )


@dataclass
class Job:
    """A crawl-and-convert job."""
    id: str
    url: str
    options: JobOptions = field(default_factory=JobOptions)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    total_pages: int = 0
    processed_pages: int = 0
    archive_path: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    completed_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    def to_status_dict(self, download_url: Optional[str] = None) -> dict:
        """Payload for ``GET /jobs/:id``."""
        response = {
            "status": self.status.value,
            "progress": self.progress,
            "totalPages": self.total_pages,
            "processedPages": self.processed_pages,
        }
        if self.status == JobStatus.COMPLETED and self.archive_path:
            response["archiveURL"] = download_url or f"/jobs/{self.id}/download"
        return response


@dataclass
class Page:
    """One discovered page of a job."""
    id: int
    job_id: str
    url: str
    title: Optional[str] = None
    document_path: Optional[str] = None
    processed_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)
