"""
Snapshot Query Gateway
Reads snapshot pages, job status and lookup directories from the backend.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as SchemaValidationError

from snapshot_tracker.domain.errors import (
    DataShapeError,
    SubmissionError,
    TransportError,
    ValidationError,
)
from snapshot_tracker.domain.models import (
    DateRange,
    JobStatus,
    JobSummary,
    PaginationCursor,
    SnapshotFilter,
    SnapshotPage,
    SnapshotRecord,
    StatusSnapshot,
    SubmissionReceipt,
)
from snapshot_tracker.infrastructure.api.backend_client import BackendClient
from snapshot_tracker.infrastructure.api.schemas import (
    JobStatusResponseSchema,
    JobSummarySchema,
    SubmissionResponseSchema,
)
from snapshot_tracker.infrastructure.api.snapshot_normalizer import (
    normalize_directory,
    normalize_snapshot,
    unwrap_list,
)

logger = logging.getLogger(__name__)


class SnapshotGateway:
    SNAPSHOTS_PATH = "/api/v1/snapshots/paginated"
    RECALCULATE_PATH = "/api/v1/snapshots/bulk-recalculate/{portfolio_id}"
    STATUS_PATH = "/api/v1/snapshots/tracking/{tracking_id}"
    PORTFOLIOS_PATH = "/api/v1/portfolios"
    ASSETS_PATH = "/api/v1/assets"

    def __init__(self, client: BackendClient, max_page_limit: int = 500):
        self._client = client
        self._max_page_limit = max_page_limit

    # ------------------------------------------------------------------
    # SNAPSHOT PAGES
    # ------------------------------------------------------------------

    async def fetch_page(self, snapshot_filter: SnapshotFilter) -> SnapshotPage:
        snapshot_filter.validate(self._max_page_limit)
        payload = await self._client.get_json(
            self.SNAPSHOTS_PATH, params=snapshot_filter.to_query_params()
        )
        return self._parse_page(payload, snapshot_filter)

    def _parse_page(self, payload: Any, snapshot_filter: SnapshotFilter) -> SnapshotPage:
        warnings: List[str] = []

        raw_records: Any = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(raw_records, list):
            error = DataShapeError(
                f"Snapshot page data is {type(raw_records).__name__}, expected list; "
                "treating page as empty"
            )
            logger.warning("%s", error)
            warnings.append(str(error))
            raw_records = []

        records, dropped = self._normalize_records(raw_records)
        warnings.extend(dropped)

        meta = payload if isinstance(payload, dict) else {}
        page = self._int_or(meta.get("page"), snapshot_filter.page)
        limit = self._int_or(meta.get("limit"), snapshot_filter.limit)
        total = self._int_or(meta.get("count", meta.get("total")), None)
        if total is None:
            total = (page - 1) * limit + len(raw_records)
            message = "Snapshot page has no count; total estimated from page contents"
            logger.warning(message)
            warnings.append(message)

        cursor = PaginationCursor(page=max(page, 1), limit=max(limit, 1), total=max(total, 0))
        return SnapshotPage(records=tuple(records), cursor=cursor, warnings=tuple(warnings))

    def _normalize_records(self, raw_records: List[Any]) -> Tuple[List[SnapshotRecord], List[str]]:
        records: List[SnapshotRecord] = []
        warnings: List[str] = []
        for raw in raw_records:
            try:
                records.append(normalize_snapshot(raw))
            except DataShapeError as exc:
                logger.warning("Dropping snapshot entry: %s", exc)
                warnings.append(str(exc))
        return records, warnings

    @staticmethod
    def _int_or(value: Any, default: Optional[int]) -> Optional[int]:
        if isinstance(value, bool):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    # ------------------------------------------------------------------
    # RECALCULATION JOBS
    # ------------------------------------------------------------------

    async def submit_recalculation(
        self,
        portfolio_id: str,
        account_id: str,
        snapshot_date: Optional[date] = None,
    ) -> SubmissionReceipt:
        """Full date-range recalculation, or a single date when snapshot_date is given"""
        if not portfolio_id or not account_id:
            raise ValidationError("portfolio_id and account_id are required")

        params = {"accountId": account_id}
        if snapshot_date is not None:
            params["snapshotDate"] = snapshot_date.isoformat()

        path = self.RECALCULATE_PATH.format(portfolio_id=portfolio_id)
        try:
            payload = await self._client.post_json(path, params=params)
        except TransportError as exc:
            raise SubmissionError(str(exc), status_code=exc.status_code, url=exc.url) from exc

        try:
            parsed = SubmissionResponseSchema.model_validate(payload)
        except SchemaValidationError as exc:
            raise SubmissionError(f"Malformed submission response: {exc.error_count()} errors") from exc

        date_range = None
        if parsed.date_range is not None:
            date_range = DateRange(parsed.date_range.start_date, parsed.date_range.end_date)
        return SubmissionReceipt(
            tracking_id=parsed.tracking_id,
            raw_status=parsed.status,
            estimated_duration=parsed.estimated_duration,
            date_range=date_range,
        )

    async def get_job_status(self, tracking_id: str) -> StatusSnapshot:
        path = self.STATUS_PATH.format(tracking_id=tracking_id)
        payload = await self._client.get_json(path)
        try:
            parsed = JobStatusResponseSchema.model_validate(payload)
        except SchemaValidationError as exc:
            raise TransportError(f"Malformed status response for {tracking_id}") from exc

        status = JobStatus.from_wire(parsed.status)
        return StatusSnapshot(
            status=status,
            raw_status=None if parsed.status is None else str(parsed.status),
            summary=self._parse_summary(parsed.summary, tracking_id),
            message=None if parsed.message is None else str(parsed.message),
        )

    @staticmethod
    def _parse_summary(raw: Any, tracking_id: str) -> Optional[JobSummary]:
        """A malformed summary never overrides the reported status"""
        if raw is None:
            return None
        try:
            parsed = JobSummarySchema.model_validate(raw)
        except SchemaValidationError as exc:
            logger.warning(
                "Ignoring malformed summary for %s (%d errors)", tracking_id, exc.error_count()
            )
            return None
        return JobSummary(
            total_snapshots=parsed.total_snapshots,
            successful_dates=parsed.successful_dates,
            failed_dates=parsed.failed_dates,
            total_dates=parsed.total_dates,
        )

    # ------------------------------------------------------------------
    # LOOKUP DIRECTORIES
    # ------------------------------------------------------------------

    async def fetch_portfolio_directory(self, account_id: str) -> Dict[str, str]:
        """portfolio id -> display name"""
        payload = await self._client.get_json(self.PORTFOLIOS_PATH, params={"accountId": account_id})
        return self._directory(payload, ("portfolioId", "id"), ("name", "portfolioName"), "portfolio")

    async def fetch_asset_directory(self, account_id: Optional[str] = None) -> Dict[str, str]:
        """asset symbol -> asset type"""
        params = {"accountId": account_id} if account_id else None
        payload = await self._client.get_json(self.ASSETS_PATH, params=params)
        return self._directory(payload, ("symbol", "assetSymbol"), ("type", "assetType"), "asset")

    @staticmethod
    def _directory(payload: Any, key_fields, value_fields, label: str) -> Dict[str, str]:
        try:
            return normalize_directory(unwrap_list(payload), key_fields, value_fields)
        except DataShapeError as exc:
            logger.warning("%s directory unusable: %s", label.capitalize(), exc)
            return {}
