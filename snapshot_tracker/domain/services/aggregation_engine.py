"""
AGGREGATION ENGINE
Groups one page of snapshot records and computes rollups.

RULES:
❌ No I/O
❌ No mutation of inputs
❌ No incremental updates: every call rebuilds its groups from scratch
✅ Null / NaN numeric fields count as zero, the record is never skipped
✅ Every record lands in exactly one group
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from snapshot_tracker.domain.errors import ConfigurationError
from snapshot_tracker.domain.models import (
    AggregateGroup,
    AggregationDimension,
    SnapshotRecord,
    SnapshotStatistics,
    UNKNOWN_ASSET_TYPE,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

DimensionLike = Union[AggregationDimension, str]


def resolve_dimension(dimension: DimensionLike) -> AggregationDimension:
    if isinstance(dimension, AggregationDimension):
        return dimension
    if isinstance(dimension, str):
        try:
            return AggregationDimension(dimension.strip().lower())
        except ValueError:
            pass
    raise ConfigurationError(
        f"Unknown aggregation dimension {dimension!r}; expected one of "
        f"{', '.join(d.value for d in AggregationDimension)}"
    )


def _coerce(value: object) -> Tuple[Decimal, bool]:
    """Return (amount, was_coerced)"""
    if value is None:
        return _ZERO, True
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return _ZERO, True
    if not amount.is_finite():
        return _ZERO, True
    return amount, False


def _group_key(
    record: SnapshotRecord,
    dimension: AggregationDimension,
    asset_type_lookup: Mapping[str, str],
) -> str:
    if dimension == AggregationDimension.PORTFOLIO:
        return record.portfolio_id
    if dimension == AggregationDimension.ASSET:
        return record.asset_symbol
    return asset_type_lookup.get(record.asset_symbol) or record.asset_type or UNKNOWN_ASSET_TYPE


def _accumulate(group: AggregateGroup, record: SnapshotRecord) -> None:
    coerced = 0

    amount, was_coerced = _coerce(record.current_value)
    group.total_value += amount
    coerced += was_coerced

    amount, was_coerced = _coerce(record.total_pl)
    group.total_pl += amount
    coerced += was_coerced

    amount, was_coerced = _coerce(record.unrealized_pl)
    group.unrealized_pl += amount
    coerced += was_coerced

    amount, was_coerced = _coerce(record.realized_pl)
    group.realized_pl += amount
    coerced += was_coerced

    amount, was_coerced = _coerce(record.quantity)
    group.total_quantity += amount
    coerced += was_coerced

    amount, was_coerced = _coerce(record.return_percentage)
    group.return_sum += amount
    coerced += was_coerced

    group.member_count += 1
    group.coerced_values += coerced
    group.asset_symbols.add(record.asset_symbol)
    group.portfolio_ids.add(record.portfolio_id)


def aggregate(
    snapshots: Iterable[SnapshotRecord],
    dimension: DimensionLike,
    asset_type_lookup: Optional[Mapping[str, str]] = None,
) -> Dict[str, AggregateGroup]:
    """
    Group snapshots by portfolio, asset or asset type in a single pass.

    Result iterates in first-seen key order. Use sorted_groups() for a
    deterministic key-sorted view.
    """
    resolved = resolve_dimension(dimension)
    lookup: Mapping[str, str] = asset_type_lookup or {}

    groups: Dict[str, AggregateGroup] = {}
    for record in snapshots:
        key = _group_key(record, resolved, lookup)
        group = groups.get(key)
        if group is None:
            group = AggregateGroup(key=key)
            groups[key] = group
        _accumulate(group, record)

    coerced = sum(g.coerced_values for g in groups.values())
    if coerced:
        logger.debug("Aggregation by %s coerced %d null/NaN values to 0", resolved.value, coerced)
    return groups


def sorted_groups(groups: Mapping[str, AggregateGroup]) -> List[AggregateGroup]:
    return [groups[key] for key in sorted(groups)]


def total_value(groups: Mapping[str, AggregateGroup]) -> Decimal:
    return sum((g.total_value for g in groups.values()), _ZERO)


def conservation_gap(
    snapshots: Sequence[SnapshotRecord],
    groups: Mapping[str, AggregateGroup],
) -> Decimal:
    """Difference between the summed group value and the summed input value"""
    input_total = sum((_coerce(s.current_value)[0] for s in snapshots), _ZERO)
    return total_value(groups) - input_total


def aggregate_timeline(
    snapshots: Sequence[SnapshotRecord],
    asset_type_lookup: Optional[Mapping[str, str]] = None,
) -> Dict[date, Dict[str, AggregateGroup]]:
    """
    Two-level rollup: snapshot date (newest first), then asset type (sorted).
    """
    by_date: Dict[date, List[SnapshotRecord]] = {}
    for record in snapshots:
        by_date.setdefault(record.snapshot_date, []).append(record)

    timeline: Dict[date, Dict[str, AggregateGroup]] = {}
    for snapshot_date in sorted(by_date, reverse=True):
        groups = aggregate(by_date[snapshot_date], AggregationDimension.ASSET_TYPE, asset_type_lookup)
        timeline[snapshot_date] = {g.key: g for g in sorted_groups(groups)}
    return timeline


def summarize_page(snapshots: Sequence[SnapshotRecord]) -> SnapshotStatistics:
    counts = Counter(s.granularity.value for s in snapshots)
    dates = [s.snapshot_date for s in snapshots]
    return SnapshotStatistics(
        total_snapshots=len(snapshots),
        by_granularity=dict(counts),
        latest_snapshot_date=max(dates) if dates else None,
        oldest_snapshot_date=min(dates) if dates else None,
    )
