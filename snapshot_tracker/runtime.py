"""
Snapshot runtime: backend client, gateway, recalculation orchestrator and views.

Created once at process start and passed to whoever needs it; start() and
stop() own the whole lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from snapshot_tracker.config import Settings, get_settings
from snapshot_tracker.core.logging import setup_logging
from snapshot_tracker.domain.errors import ValidationError
from snapshot_tracker.domain.models import SnapshotFilter
from snapshot_tracker.domain.services.recalculation_orchestrator import (
    ConcurrencyPolicy,
    PollPolicy,
    RecalculationOrchestrator,
    Sleeper,
)
from snapshot_tracker.infrastructure.api.backend_client import BackendClient
from snapshot_tracker.infrastructure.api.snapshot_gateway import SnapshotGateway
from snapshot_tracker.services.snapshot_view_coordinator import SnapshotViewCoordinator

logger = logging.getLogger(__name__)


def poll_policy_from_settings(settings: Settings) -> PollPolicy:
    return PollPolicy(
        warmup_seconds=settings.RECALC_WARMUP_SECONDS,
        interval_seconds=settings.RECALC_POLL_INTERVAL_SECONDS,
        backoff_factor=settings.RECALC_BACKOFF_FACTOR,
        max_interval_seconds=settings.RECALC_MAX_POLL_INTERVAL_SECONDS,
        max_attempts=settings.RECALC_MAX_POLL_ATTEMPTS,
        max_consecutive_errors=settings.RECALC_MAX_CONSECUTIVE_ERRORS,
    )


class SnapshotRuntime:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleeper = asyncio.sleep,
        configure_logging: bool = False,
    ):
        """
        configure_logging=True makes start() set up process-wide logging
        at LOG_LEVEL; leave it off when the host application owns logging.
        """
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._sleep = sleep
        self._configure_logging = configure_logging
        self._client: Optional[BackendClient] = None
        self._gateway: Optional[SnapshotGateway] = None
        self._orchestrator: Optional[RecalculationOrchestrator] = None
        self._views: List[SnapshotViewCoordinator] = []
        self._portfolio_names: Dict[str, str] = {}
        self._asset_types: Dict[str, str] = {}
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def gateway(self) -> SnapshotGateway:
        self._require_started()
        return self._gateway

    @property
    def orchestrator(self) -> RecalculationOrchestrator:
        self._require_started()
        return self._orchestrator

    @property
    def portfolio_names(self) -> Dict[str, str]:
        return dict(self._portfolio_names)

    @property
    def asset_types(self) -> Dict[str, str]:
        return dict(self._asset_types)

    def _require_started(self) -> None:
        if not self._started:
            raise ValidationError("Snapshot runtime not started")

    async def start(self) -> None:
        if self._started:
            return
        cfg = self.settings
        try:
            concurrency = ConcurrencyPolicy(cfg.RECALC_CONCURRENCY_POLICY.lower())
        except ValueError:
            raise ValidationError(
                f"Unknown RECALC_CONCURRENCY_POLICY {cfg.RECALC_CONCURRENCY_POLICY!r}"
            ) from None

        if self._configure_logging:
            setup_logging(cfg.LOG_LEVEL)

        self._client = BackendClient(
            api_base_url=cfg.API_BASE_URL,
            api_token=cfg.API_TOKEN,
            timeout_seconds=cfg.HTTP_TIMEOUT_SECONDS,
            client=self._http_client,
        )
        self._gateway = SnapshotGateway(self._client, max_page_limit=cfg.MAX_PAGE_LIMIT)
        self._orchestrator = RecalculationOrchestrator(
            self._gateway,
            poll_policy=poll_policy_from_settings(cfg),
            concurrency=concurrency,
            sleep=self._sleep,
        )
        self._started = True
        logger.info("Snapshot runtime started against %s", cfg.API_BASE_URL)

    async def load_directories(self, account_id: Optional[str] = None) -> None:
        """Refresh portfolio names and asset types; failures propagate"""
        self._require_started()
        account_id = account_id or self.settings.ACCOUNT_ID
        if not account_id:
            raise ValidationError("ACCOUNT_ID is required to load directories")
        self._portfolio_names = await self._gateway.fetch_portfolio_directory(account_id)
        self._asset_types = await self._gateway.fetch_asset_directory(account_id)
        for view in self._views:
            view.set_asset_types(self._asset_types)
        logger.info(
            "Loaded %d portfolios and %d asset types",
            len(self._portfolio_names), len(self._asset_types),
        )

    def create_view(self, initial_filter: Optional[SnapshotFilter] = None) -> SnapshotViewCoordinator:
        self._require_started()
        view = SnapshotViewCoordinator(
            gateway=self._gateway,
            orchestrator=self._orchestrator,
            initial_filter=initial_filter or SnapshotFilter(limit=self.settings.DEFAULT_PAGE_LIMIT),
            asset_type_lookup=self._asset_types,
            account_id=self.settings.ACCOUNT_ID,
            max_page_limit=self.settings.MAX_PAGE_LIMIT,
        )
        self._views.append(view)
        return view

    async def stop(self) -> None:
        if not self._started:
            return
        for view in self._views:
            await view.close()
        self._views.clear()
        await self._orchestrator.close()
        await self._client.close()
        self._started = False
        logger.info("Snapshot runtime stopped")

    async def __aenter__(self) -> "SnapshotRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
