"""
Snapshot tracker error taxonomy.

Propagation rules:
- ValidationError / ConfigurationError: raised immediately, never defaulted
- TransportError / SubmissionError: always reach the caller
- DataShapeError: recorded and logged by the gateway, never raised from it
- JobFailure / JobUnknown / PollTimeoutError: carried by the terminal JobEvent
"""

from __future__ import annotations

from typing import Optional


class SnapshotTrackerError(Exception):
    """Base class for all snapshot tracker errors"""


class ValidationError(SnapshotTrackerError):
    """Malformed filter, bad argument or unrecognized aggregation dimension"""


class ConfigurationError(ValidationError):
    """Aggregation requested with a dimension the engine does not know"""


class JobAlreadyRunningError(ValidationError):
    """A recalculation job is already tracked for this portfolio"""

    def __init__(self, portfolio_id: str, tracking_id: str):
        super().__init__(
            f"Recalculation already in flight for portfolio {portfolio_id} "
            f"(tracking id {tracking_id})"
        )
        self.portfolio_id = portfolio_id
        self.tracking_id = tracking_id


class TransportError(SnapshotTrackerError):
    """Network or backend failure on fetch, submit or poll"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class SubmissionError(TransportError):
    """Backend refused or failed a recalculation submission"""


class DataShapeError(SnapshotTrackerError):
    """Backend payload did not have the expected shape"""


class InvalidTransitionError(SnapshotTrackerError):
    """Job status change not allowed by the lifecycle table"""


class JobFailure(SnapshotTrackerError):
    """Status endpoint reported the job as failed"""

    def __init__(self, tracking_id: str, message: Optional[str] = None):
        super().__init__(message or f"Recalculation {tracking_id} failed")
        self.tracking_id = tracking_id


class JobUnknown(SnapshotTrackerError):
    """Status endpoint returned a status string we do not recognize"""

    def __init__(self, tracking_id: str, raw_status: Optional[str]):
        super().__init__(
            f"Recalculation {tracking_id} returned unrecognized status "
            f"{raw_status!r}; manual follow-up required"
        )
        self.tracking_id = tracking_id
        self.raw_status = raw_status


class PollTimeoutError(SnapshotTrackerError):
    """Polling gave up after the attempt cap without a terminal status"""

    def __init__(self, tracking_id: str, attempts: int, last_status: Optional[str] = None):
        super().__init__(
            f"Recalculation {tracking_id} still {last_status or 'pending'} "
            f"after {attempts} polls"
        )
        self.tracking_id = tracking_id
        self.attempts = attempts
        self.last_status = last_status
