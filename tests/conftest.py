import asyncio
from decimal import Decimal
from datetime import date
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from httpx import AsyncClient, ASGITransport

from snapshot_tracker.config import Settings
from snapshot_tracker.domain.models import SnapshotGranularity, SnapshotRecord
from snapshot_tracker.infrastructure.api.backend_client import BackendClient
from snapshot_tracker.infrastructure.api.snapshot_gateway import SnapshotGateway


def make_record(
    portfolio_id: str = "P1",
    asset_symbol: str = "AAA",
    current_value=Decimal("100"),
    snapshot_date: date = date(2024, 1, 15),
    granularity: SnapshotGranularity = SnapshotGranularity.DAILY,
    **overrides,
) -> SnapshotRecord:
    values = dict(
        snapshot_id=f"{portfolio_id}-{asset_symbol}-{snapshot_date.isoformat()}",
        portfolio_id=portfolio_id,
        asset_symbol=asset_symbol,
        snapshot_date=snapshot_date,
        granularity=granularity,
        quantity=Decimal("1"),
        current_price=current_value,
        current_value=current_value,
        total_pl=Decimal("0"),
        unrealized_pl=Decimal("0"),
        realized_pl=Decimal("0"),
        return_percentage=Decimal("0"),
    )
    values.update(overrides)
    return SnapshotRecord(**values)


def wire_snapshot(index: int, portfolio_id: str = "P1", symbol: Optional[str] = None) -> Dict:
    return {
        "id": f"snap-{index}",
        "portfolioId": portfolio_id,
        "assetSymbol": symbol or f"SYM{index}",
        "snapshotDate": "2024-01-15T00:00:00.000Z",
        "granularity": "DAILY",
        "quantity": "2",
        "currentPrice": "50.00",
        "currentValue": "100.00",
        "totalPl": "10.00",
        "unrealizedPl": "6.00",
        "realizedPl": "4.00",
        "returnPercentage": "11.11",
    }


class FakeBackendState:
    """Scriptable behaviour for the fake portfolio backend"""

    def __init__(self):
        self.snapshots: List[Dict] = []
        self.page_payload: Optional[object] = None
        self.page_delays: Dict[int, float] = {}
        self.page_status_code: int = 200
        self.page_requests: List[Dict[str, str]] = []

        self.submissions: List[Dict[str, str]] = []
        self.submit_status_code: int = 200
        self.submit_payload: Optional[object] = None

        self.status_scripts: Dict[str, List[object]] = {}
        self.status_requests: List[str] = []

        self.portfolios: object = [
            {"portfolioId": "P1", "name": "Growth"},
            {"portfolioId": "P2", "name": "Income"},
        ]
        self.assets: object = [
            {"symbol": "AAA", "type": "STOCK"},
            {"symbol": "BBB", "type": "BOND"},
        ]
        self.directory_status_code: int = 200


def build_fake_backend(state: FakeBackendState) -> FastAPI:
    app = FastAPI()

    @app.get("/api/v1/snapshots/paginated")
    async def snapshots_page(request: Request):
        params = dict(request.query_params)
        state.page_requests.append(params)
        page = int(params.get("page", 1))
        limit = int(params.get("limit", 25))
        delay = state.page_delays.get(page)
        if delay:
            await asyncio.sleep(delay)
        if state.page_status_code != 200:
            return JSONResponse({"message": "boom"}, status_code=state.page_status_code)
        if state.page_payload is not None:
            return state.page_payload

        rows = [
            s for s in state.snapshots
            if not params.get("portfolioId") or s["portfolioId"] == params["portfolioId"]
        ]
        start = (page - 1) * limit
        return {"data": rows[start:start + limit], "page": page, "limit": limit, "count": len(rows)}

    @app.post("/api/v1/snapshots/bulk-recalculate/{portfolio_id}")
    async def bulk_recalculate(portfolio_id: str, request: Request):
        state.submissions.append({"portfolioId": portfolio_id, **dict(request.query_params)})
        if state.submit_status_code != 200:
            return JSONResponse({"message": "rejected"}, status_code=state.submit_status_code)
        if state.submit_payload is not None:
            return state.submit_payload
        return {
            "trackingId": f"trk-{len(state.submissions)}",
            "status": "processing",
            "estimatedDuration": "2-5 minutes",
            "dateRange": {"startDate": "2023-01-01", "endDate": "2024-01-15"},
        }

    @app.get("/api/v1/snapshots/tracking/{tracking_id}")
    async def tracking_status(tracking_id: str):
        state.status_requests.append(tracking_id)
        script = state.status_scripts.get(tracking_id) or [{"status": "in_progress"}]
        entry = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(entry, int):
            return JSONResponse({"message": "unavailable"}, status_code=entry)
        return entry

    @app.get("/api/v1/portfolios")
    async def portfolios():
        if state.directory_status_code != 200:
            return JSONResponse({"message": "down"}, status_code=state.directory_status_code)
        return state.portfolios

    @app.get("/api/v1/assets")
    async def assets():
        return state.assets

    return app


@pytest.fixture()
def backend_state() -> FakeBackendState:
    return FakeBackendState()


@pytest.fixture()
async def http_client(backend_state) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=build_fake_backend(backend_state))
    async with AsyncClient(transport=transport) as client:
        yield client


@pytest.fixture()
def backend_client(http_client) -> BackendClient:
    return BackendClient(api_base_url="http://test", api_token="secret-token", client=http_client)


@pytest.fixture()
def gateway(backend_client) -> SnapshotGateway:
    return SnapshotGateway(backend_client)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        API_BASE_URL="http://test",
        API_TOKEN="secret-token",
        ACCOUNT_ID="acct-1",
        RECALC_WARMUP_SECONDS=0,
        RECALC_POLL_INTERVAL_SECONDS=0,
        RECALC_MAX_POLL_INTERVAL_SECONDS=0,
        RECALC_MAX_POLL_ATTEMPTS=10,
    )


@pytest.fixture()
def make_snapshot():
    return make_record


@pytest.fixture()
def wire_row():
    return wire_snapshot
