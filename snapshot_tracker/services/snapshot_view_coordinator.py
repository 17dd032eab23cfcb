"""
Snapshot View Coordinator
Single owner of query state: filter, page, limit, fetched page and rollups.

- One fetch per effective parameter change
- Last request wins: results of superseded requests are dropped
- Rollups cover the current page only
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields, replace
from datetime import date
from typing import Dict, Mapping, Optional, Set, Tuple

from snapshot_tracker.domain.errors import SnapshotTrackerError, ValidationError
from snapshot_tracker.domain.models import (
    AggregateGroup,
    AggregationDimension,
    JobEvent,
    PaginationCursor,
    RecalculationJob,
    SnapshotFilter,
    SnapshotGranularity,
    SnapshotRecord,
    SnapshotStatistics,
)
from snapshot_tracker.domain.services.aggregation_engine import (
    DimensionLike,
    aggregate,
    aggregate_timeline,
    resolve_dimension,
    summarize_page,
)
from snapshot_tracker.domain.services.recalculation_orchestrator import RecalculationOrchestrator
from snapshot_tracker.infrastructure.api.snapshot_gateway import SnapshotGateway

logger = logging.getLogger(__name__)

_FILTER_FIELDS = {f.name for f in fields(SnapshotFilter)}
_PAGING_FIELDS = {"page", "limit"}


@dataclass(frozen=True)
class SnapshotView:
    """What a consumer renders"""
    filter: SnapshotFilter
    records: Tuple[SnapshotRecord, ...] = ()
    cursor: Optional[PaginationCursor] = None
    loading: bool = False
    error: Optional[SnapshotTrackerError] = None
    warnings: Tuple[str, ...] = ()
    generation: int = 0


class SnapshotViewCoordinator:
    def __init__(
        self,
        gateway: SnapshotGateway,
        orchestrator: Optional[RecalculationOrchestrator] = None,
        initial_filter: Optional[SnapshotFilter] = None,
        asset_type_lookup: Optional[Mapping[str, str]] = None,
        account_id: Optional[str] = None,
        max_page_limit: int = 500,
    ):
        self._gateway = gateway
        self._orchestrator = orchestrator
        self._account_id = account_id
        self._max_page_limit = max_page_limit
        self._filter = (initial_filter or SnapshotFilter()).validate(max_page_limit)
        self._asset_types: Dict[str, str] = dict(asset_type_lookup or {})

        self._generation = 0
        self._requested_signature: Optional[tuple] = None
        self._records: Tuple[SnapshotRecord, ...] = ()
        self._cursor: Optional[PaginationCursor] = None
        self._warnings: Tuple[str, ...] = ()
        self._error: Optional[SnapshotTrackerError] = None
        self._applied_generation = 0
        self._grouped: Dict[AggregationDimension, Dict[str, AggregateGroup]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        if orchestrator is not None:
            orchestrator.add_listener(self._on_job_event)

    # ------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------

    @property
    def filter(self) -> SnapshotFilter:
        return self._filter

    @property
    def view(self) -> SnapshotView:
        return SnapshotView(
            filter=self._filter,
            records=self._records,
            cursor=self._cursor,
            loading=self._applied_generation != self._generation,
            error=self._error,
            warnings=self._warnings,
            generation=self._applied_generation,
        )

    def set_asset_types(self, lookup: Mapping[str, str]) -> None:
        self._asset_types = dict(lookup)
        self._grouped.clear()

    # ------------------------------------------------------------------
    # PARAMETER CHANGES
    # ------------------------------------------------------------------

    def load(self) -> Optional[asyncio.Task]:
        """Fetch the current parameters unless that request was already issued"""
        return self.update()

    def update(self, **changes) -> Optional[asyncio.Task]:
        """
        Apply filter/page/limit changes and schedule one fetch.

        Changing any filter field without an explicit page resets to page 1.
        Returns None when the effective parameters did not change.
        """
        if self._closed:
            raise ValidationError("Snapshot view is closed")

        unknown = set(changes) - _FILTER_FIELDS
        if unknown:
            raise ValidationError(f"Unknown snapshot filter fields: {', '.join(sorted(unknown))}")

        if changes.get("granularity") is not None:
            changes["granularity"] = SnapshotGranularity.parse(changes["granularity"])
        for key in ("start_date", "end_date"):
            if isinstance(changes.get(key), str):
                try:
                    changes[key] = date.fromisoformat(changes[key])
                except ValueError:
                    raise ValidationError(f"Invalid {key}: {changes[key]!r}") from None

        if "page" not in changes and set(changes) - _PAGING_FIELDS:
            changes["page"] = 1

        candidate = replace(self._filter, **changes).validate(self._max_page_limit)
        if candidate.signature() == self._requested_signature:
            return None

        self._filter = candidate
        return self._schedule_fetch()

    def next_page(self) -> Optional[asyncio.Task]:
        if self._cursor is None or not self._cursor.has_next:
            return None
        return self.update(page=self._filter.page + 1)

    def previous_page(self) -> Optional[asyncio.Task]:
        if self._cursor is None or not self._cursor.has_prev:
            return None
        return self.update(page=self._filter.page - 1)

    async def refresh(self) -> SnapshotView:
        """Drop the current page and rollups, then fetch once"""
        if self._closed:
            raise ValidationError("Snapshot view is closed")
        self._records = ()
        self._cursor = None
        self._warnings = ()
        self._grouped.clear()
        return await self._schedule_fetch()

    # ------------------------------------------------------------------
    # FETCH
    # ------------------------------------------------------------------

    def _schedule_fetch(self) -> asyncio.Task:
        self._generation += 1
        self._requested_signature = self._filter.signature()
        task = asyncio.create_task(self._fetch(self._generation, self._filter))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fetch(self, generation: int, snapshot_filter: SnapshotFilter) -> SnapshotView:
        try:
            page = await self._gateway.fetch_page(snapshot_filter)
        except SnapshotTrackerError as exc:
            if self._is_current(generation):
                logger.error("Snapshot fetch failed: %s", exc)
                self._error = exc
                self._applied_generation = generation
            return self.view

        if not self._is_current(generation):
            logger.debug("Discarding stale snapshot page (generation %d < %d)", generation, self._generation)
            return self.view

        self._records = page.records
        self._cursor = page.cursor
        self._warnings = page.warnings
        self._error = None
        self._grouped.clear()
        self._applied_generation = generation
        return self.view

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    # ------------------------------------------------------------------
    # ROLLUPS (current page only)
    # ------------------------------------------------------------------

    def grouped(self, dimension: DimensionLike) -> Dict[str, AggregateGroup]:
        resolved = resolve_dimension(dimension)
        groups = self._grouped.get(resolved)
        if groups is None:
            groups = aggregate(self._records, resolved, self._asset_types)
            self._grouped[resolved] = groups
        return groups

    def timeline(self) -> Dict[date, Dict[str, AggregateGroup]]:
        return aggregate_timeline(self._records, self._asset_types)

    def statistics(self) -> SnapshotStatistics:
        return summarize_page(self._records)

    # ------------------------------------------------------------------
    # RECALCULATION
    # ------------------------------------------------------------------

    async def start_recalculation(
        self,
        portfolio_id: Optional[str] = None,
        account_id: Optional[str] = None,
        snapshot_date: Optional[date] = None,
    ) -> RecalculationJob:
        if self._orchestrator is None:
            raise ValidationError("No recalculation orchestrator configured")
        portfolio_id = portfolio_id or self._filter.portfolio_id
        account_id = account_id or self._account_id
        if not portfolio_id or not account_id:
            raise ValidationError("Recalculation needs a portfolio id and an account id")
        return await self._orchestrator.submit(portfolio_id, account_id, snapshot_date=snapshot_date)

    async def _on_job_event(self, event: JobEvent) -> None:
        if self._closed or not event.invalidate:
            return
        if self._filter.portfolio_id not in (None, event.portfolio_id):
            return
        logger.info("Recalculation %s completed; refreshing snapshots", event.tracking_id)
        await self.refresh()

    # ------------------------------------------------------------------
    # TEARDOWN
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._orchestrator is not None:
            self._orchestrator.remove_listener(self._on_job_event)
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
