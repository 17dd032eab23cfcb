"""
Domain Models Package
Export all domain entities
"""

from .snapshot import (
    # Enums
    AggregationDimension,
    SnapshotGranularity,
    UNKNOWN_ASSET_TYPE,

    # Entities
    AggregateGroup,
    PaginationCursor,
    SnapshotFilter,
    SnapshotPage,
    SnapshotRecord,
    SnapshotStatistics,
)
from .recalculation import (
    # Enums
    JobStatus,
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    can_transition,

    # Entities
    DateRange,
    JobEvent,
    JobSummary,
    RecalculationJob,
    StatusSnapshot,
    SubmissionReceipt,
)

__all__ = [
    # Enums
    "AggregationDimension",
    "JobStatus",
    "SnapshotGranularity",
    "PENDING_STATUSES",
    "TERMINAL_STATUSES",
    "UNKNOWN_ASSET_TYPE",
    "can_transition",

    # Entities
    "AggregateGroup",
    "DateRange",
    "JobEvent",
    "JobSummary",
    "PaginationCursor",
    "RecalculationJob",
    "SnapshotFilter",
    "SnapshotPage",
    "SnapshotRecord",
    "SnapshotStatistics",
    "StatusSnapshot",
    "SubmissionReceipt",
]
