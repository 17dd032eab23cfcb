"""
Snapshot ingestion normalizer.

The backend has shipped several field spellings over time (camelCase,
snake_case, nested objects). Every variant is resolved here, once, so
downstream code only ever sees SnapshotRecord fields.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from snapshot_tracker.domain.errors import DataShapeError, ValidationError
from snapshot_tracker.domain.models import SnapshotGranularity, SnapshotRecord


def _first(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if "." in key:
            parent, child = key.split(".", 1)
            nested = raw.get(parent)
            value = nested.get(child) if isinstance(nested, Mapping) else None
        else:
            value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


_SNAPSHOT_ID = ("id", "snapshotId", "snapshot_id", "uuid")
_PORTFOLIO_ID = ("portfolioId", "portfolio_id", "portfolio.portfolioId", "portfolio.id")
_ASSET_SYMBOL = ("assetSymbol", "asset_symbol", "symbol", "asset.symbol")
_ASSET_TYPE = ("assetType", "asset_type", "asset.type", "asset.assetType")
_SNAPSHOT_DATE = ("snapshotDate", "snapshot_date", "date")

_NUMERIC_FIELDS: Dict[str, Sequence[str]] = {
    "quantity": ("quantity",),
    "current_price": ("currentPrice", "current_price"),
    "current_value": ("currentValue", "current_value"),
    "total_pl": ("totalPl", "total_pl"),
    "unrealized_pl": ("unrealizedPl", "unrealized_pl"),
    "realized_pl": ("realizedPl", "realized_pl"),
    "return_percentage": ("returnPercentage", "return_percentage"),
}


def normalize_snapshot(raw: Any) -> SnapshotRecord:
    """
    Canonicalize one backend snapshot payload.

    Raises DataShapeError when the record has no usable identity
    (portfolio, symbol, date, granularity). Numeric fields that are
    missing or unparseable become None.
    """
    if not isinstance(raw, Mapping):
        raise DataShapeError(f"Snapshot entry is {type(raw).__name__}, expected object")

    portfolio_id = _first(raw, _PORTFOLIO_ID)
    asset_symbol = _first(raw, _ASSET_SYMBOL)
    snapshot_date = _as_date(_first(raw, _SNAPSHOT_DATE))
    if not portfolio_id or not asset_symbol or snapshot_date is None:
        raise DataShapeError(
            f"Snapshot {_first(raw, _SNAPSHOT_ID)!r} missing portfolio, symbol or date"
        )

    try:
        granularity = SnapshotGranularity.parse(raw.get("granularity") or SnapshotGranularity.DAILY)
    except ValidationError as exc:
        raise DataShapeError(str(exc)) from exc

    snapshot_id = _first(raw, _SNAPSHOT_ID)
    asset_type = _first(raw, _ASSET_TYPE)
    numbers = {name: _as_decimal(_first(raw, keys)) for name, keys in _NUMERIC_FIELDS.items()}

    return SnapshotRecord(
        snapshot_id=str(snapshot_id) if snapshot_id is not None else None,
        portfolio_id=str(portfolio_id),
        asset_symbol=str(asset_symbol),
        snapshot_date=snapshot_date,
        granularity=granularity,
        asset_type=str(asset_type) if asset_type is not None else None,
        **numbers,
    )


def normalize_directory(
    entries: Any,
    key_fields: Sequence[str],
    value_fields: Sequence[str],
) -> Dict[str, str]:
    """Build an id -> label lookup; entries without both parts are skipped"""
    if not isinstance(entries, list):
        raise DataShapeError(f"Directory payload is {type(entries).__name__}, expected list")
    lookup: Dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        key = _first(entry, key_fields)
        value = _first(entry, value_fields)
        if key is None or value is None:
            continue
        lookup[str(key)] = str(value)
    return lookup


def unwrap_list(payload: Any) -> List[Any]:
    """Accept either a bare list or a {data: [...]} envelope"""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        return payload["data"]
    raise DataShapeError(f"Expected list payload, got {type(payload).__name__}")
