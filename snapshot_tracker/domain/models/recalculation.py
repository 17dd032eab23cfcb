"""
Domain Models - Recalculation jobs
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional

from snapshot_tracker.domain.errors import InvalidTransitionError, SnapshotTrackerError


class JobStatus(str, Enum):
    """Recalculation job lifecycle status"""
    REQUESTED = "REQUESTED"
    PROCESSING = "PROCESSING"
    STARTED = "STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"
    TIMED_OUT = "TIMED_OUT"
    ERRORED = "ERRORED"

    @classmethod
    def from_wire(cls, raw: Optional[str]) -> "JobStatus":
        """Map a backend status string; anything unexpected is UNKNOWN"""
        if not isinstance(raw, str):
            return cls.UNKNOWN
        return _WIRE_STATUSES.get(raw.strip().lower(), cls.UNKNOWN)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_pending(self) -> bool:
        return self in PENDING_STATUSES


_WIRE_STATUSES: Dict[str, JobStatus] = {
    "processing": JobStatus.PROCESSING,
    "started": JobStatus.STARTED,
    "in_progress": JobStatus.IN_PROGRESS,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}

TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.UNKNOWN,
    JobStatus.TIMED_OUT,
    JobStatus.ERRORED,
})

PENDING_STATUSES: FrozenSet[JobStatus] = frozenset({
    JobStatus.PROCESSING,
    JobStatus.STARTED,
    JobStatus.IN_PROGRESS,
})

# Position in the lifecycle; a job only ever moves to a higher rank.
_RANK: Dict[JobStatus, int] = {
    JobStatus.REQUESTED: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.STARTED: 2,
    JobStatus.IN_PROGRESS: 3,
    JobStatus.COMPLETED: 4,
    JobStatus.FAILED: 4,
    JobStatus.UNKNOWN: 4,
    JobStatus.TIMED_OUT: 4,
    JobStatus.ERRORED: 4,
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    if current.is_terminal:
        return False
    if current == JobStatus.REQUESTED:
        return new == JobStatus.PROCESSING
    return _RANK[new] > _RANK[current]


@dataclass(frozen=True)
class DateRange:
    start_date: date
    end_date: date


@dataclass(frozen=True)
class JobSummary:
    """Terminal summary reported by the status endpoint"""
    total_snapshots: int
    successful_dates: int
    failed_dates: Optional[int] = None
    total_dates: Optional[int] = None


@dataclass(frozen=True)
class SubmissionReceipt:
    tracking_id: str
    raw_status: Optional[str]
    estimated_duration: Optional[str] = None
    date_range: Optional[DateRange] = None


@dataclass(frozen=True)
class StatusSnapshot:
    """One read of the status endpoint"""
    status: JobStatus
    raw_status: Optional[str]
    summary: Optional[JobSummary] = None
    message: Optional[str] = None


@dataclass
class RecalculationJob:
    """Mutable job state, owned by the orchestrator"""
    portfolio_id: str
    account_id: str
    tracking_id: Optional[str] = None
    status: JobStatus = JobStatus.REQUESTED
    submitted_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    estimated_duration: Optional[str] = None
    date_range: Optional[DateRange] = None
    summary: Optional[JobSummary] = None
    attempts: int = 0
    error: Optional[SnapshotTrackerError] = None

    def advance(self, new_status: JobStatus) -> None:
        if new_status == self.status:
            return
        if not can_transition(self.status, new_status):
            raise InvalidTransitionError(
                f"Job {self.tracking_id or self.portfolio_id}: "
                f"{self.status.value} -> {new_status.value} not allowed"
            )
        self.status = new_status


@dataclass(frozen=True)
class JobEvent:
    """Terminal notification, emitted exactly once per tracked job"""
    tracking_id: str
    portfolio_id: str
    status: JobStatus
    summary: Optional[JobSummary] = None
    error: Optional[SnapshotTrackerError] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETED

    @property
    def invalidate(self) -> bool:
        """Dependent caches are stale only after a successful recalculation"""
        return self.succeeded
