"""
Domain Models - Snapshots
Pure domain objects with no infrastructure dependencies
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from snapshot_tracker.domain.errors import ValidationError


class SnapshotGranularity(str, Enum):
    """Time bucket a snapshot represents"""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @classmethod
    def parse(cls, value: object) -> "SnapshotGranularity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(f"Unrecognized granularity: {value!r}") from None


class AggregationDimension(str, Enum):
    """Grouping dimension for rollups"""
    PORTFOLIO = "portfolio"
    ASSET = "asset"
    ASSET_TYPE = "asset_type"


UNKNOWN_ASSET_TYPE = "Unknown"


@dataclass(frozen=True)
class SnapshotRecord:
    """Point-in-time financial record for one asset in one portfolio - Immutable"""
    snapshot_id: Optional[str]
    portfolio_id: str
    asset_symbol: str
    snapshot_date: date
    granularity: SnapshotGranularity
    asset_type: Optional[str] = None
    quantity: Optional[Decimal] = None
    current_price: Optional[Decimal] = None
    current_value: Optional[Decimal] = None
    total_pl: Optional[Decimal] = None
    unrealized_pl: Optional[Decimal] = None
    realized_pl: Optional[Decimal] = None
    return_percentage: Optional[Decimal] = None

    @property
    def natural_key(self) -> Tuple[str, str, date, SnapshotGranularity]:
        return (self.portfolio_id, self.asset_symbol, self.snapshot_date, self.granularity)


@dataclass
class AggregateGroup:
    """
    Rollup of all snapshots sharing a grouping key.
    Built fresh by the aggregation engine on every call.
    """
    key: str
    member_count: int = 0
    total_value: Decimal = Decimal("0")
    total_pl: Decimal = Decimal("0")
    unrealized_pl: Decimal = Decimal("0")
    realized_pl: Decimal = Decimal("0")
    total_quantity: Decimal = Decimal("0")
    return_sum: Decimal = Decimal("0")
    coerced_values: int = 0
    asset_symbols: Set[str] = field(default_factory=set)
    portfolio_ids: Set[str] = field(default_factory=set)

    @property
    def asset_count(self) -> int:
        return len(self.asset_symbols)

    @property
    def portfolio_count(self) -> int:
        return len(self.portfolio_ids)

    @property
    def average_price(self) -> Decimal:
        """Value-weighted price: total value over total quantity"""
        if self.total_quantity == 0:
            return Decimal("0")
        return self.total_value / self.total_quantity

    @property
    def average_return(self) -> Decimal:
        """Plain mean of member return percentages"""
        if self.member_count == 0:
            return Decimal("0")
        return self.return_sum / self.member_count

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "member_count": self.member_count,
            "total_value": self.total_value,
            "total_pl": self.total_pl,
            "unrealized_pl": self.unrealized_pl,
            "realized_pl": self.realized_pl,
            "total_quantity": self.total_quantity,
            "asset_count": self.asset_count,
            "portfolio_count": self.portfolio_count,
            "average_price": self.average_price,
            "average_return": self.average_return,
            "coerced_values": self.coerced_values,
        }


@dataclass(frozen=True)
class PaginationCursor:
    """Page position within a filtered result set - Immutable"""
    page: int
    limit: int
    total: int

    def __post_init__(self):
        if self.page < 1:
            raise ValidationError("Page must be at least 1")
        if self.limit < 1:
            raise ValidationError("Limit must be at least 1")
        if self.total < 0:
            raise ValidationError("Total cannot be negative")

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class SnapshotFilter:
    """Query parameters for one page of snapshots - Immutable"""
    portfolio_id: Optional[str] = None
    asset_id: Optional[str] = None
    asset_symbol: Optional[str] = None
    granularity: Optional[SnapshotGranularity] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = 1
    limit: int = 25

    def validate(self, max_limit: int = 500) -> "SnapshotFilter":
        if self.page < 1:
            raise ValidationError("Page must be at least 1")
        if self.limit < 1 or self.limit > max_limit:
            raise ValidationError(f"Limit must be between 1 and {max_limit}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError("Start date must not be after end date")
        if self.granularity is not None and not isinstance(self.granularity, SnapshotGranularity):
            raise ValidationError(f"Unrecognized granularity: {self.granularity!r}")
        return self

    def signature(self) -> Tuple[object, ...]:
        return (
            self.portfolio_id,
            self.asset_id,
            self.asset_symbol,
            self.granularity.value if self.granularity else None,
            self.start_date.isoformat() if self.start_date else None,
            self.end_date.isoformat() if self.end_date else None,
            self.page,
            self.limit,
        )

    def to_query_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {"page": str(self.page), "limit": str(self.limit)}
        if self.portfolio_id:
            params["portfolioId"] = self.portfolio_id
        if self.asset_id:
            params["assetId"] = self.asset_id
        if self.asset_symbol:
            params["assetSymbol"] = self.asset_symbol
        if self.granularity:
            params["granularity"] = self.granularity.value
        if self.start_date:
            params["startDate"] = self.start_date.isoformat()
        if self.end_date:
            params["endDate"] = self.end_date.isoformat()
        return params


@dataclass(frozen=True)
class SnapshotPage:
    """One fetched page plus any non-fatal shape warnings"""
    records: Tuple[SnapshotRecord, ...]
    cursor: PaginationCursor
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SnapshotStatistics:
    """Per-page snapshot counts"""
    total_snapshots: int
    by_granularity: Dict[str, int]
    latest_snapshot_date: Optional[date]
    oldest_snapshot_date: Optional[date]
