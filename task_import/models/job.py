"""Import job execution models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(str, Enum):
    """Status of an import job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PARTIAL)


@dataclass
class JobError:
    """A per-record (or terminal) error recorded on a job."""
    item_id: Optional[str]
    reason: str
    code: str = "record"
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "item_id": self.item_id,
            "reason": self.reason,
            "code": self.code,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ImportJob:
    """One execution of the import pipeline."""
    source_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    # Progress
    total: Optional[int] = None
    processed: int = 0
    committed: int = 0
    pages_fetched: int = 0

    # Errors
    errors: List[JobError] = field(default_factory=list)
    terminal_error: Optional[JobError] = None
    cancelled: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def failed_count(self) -> int:
        """Number of skipped records."""
        return len(self.errors)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def latest_error(self) -> Optional[JobError]:
        if self.terminal_error:
            return self.terminal_error
        return self.errors[-1] if self.errors else None

    def summary(self) -> str:
        """Human readable one-line summary of the job."""
        total = self.total if self.total is not None else "?"
        text = (
            f"{self.status.value}: {self.processed}/{total} processed, "
            f"{self.committed} imported, {self.failed_count} skipped"
        )
        if self.cancelled:
            text += " (cancelled)"
        reason = self.terminal_error or (self.errors[0] if self.errors else None)
        if reason:
            text += f" - {reason.reason}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "total": self.total,
            "processed": self.processed,
            "committed": self.committed,
            "pages_fetched": self.pages_fetched,
            "errors": [e.to_dict() for e in self.errors],
            "terminal_error": self.terminal_error.to_dict() if self.terminal_error else None,
            "cancelled": self.cancelled,
            "summary": self.summary(),
        }
