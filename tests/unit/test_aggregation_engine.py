"""
Unit Tests for the aggregation engine

✅ Conservation of value across every dimension
✅ Null / NaN coercion keeps every record
✅ Deterministic, pure rebuilds
"""

import pytest
from datetime import date
from decimal import Decimal

from snapshot_tracker.domain.errors import ConfigurationError
from snapshot_tracker.domain.models import (
    AggregationDimension,
    SnapshotGranularity,
    UNKNOWN_ASSET_TYPE,
)
from snapshot_tracker.domain.services.aggregation_engine import (
    aggregate,
    aggregate_timeline,
    conservation_gap,
    resolve_dimension,
    sorted_groups,
    summarize_page,
    total_value,
)


@pytest.fixture()
def three_snapshots(make_snapshot):
    return [
        make_snapshot("P1", "AAA", Decimal("100")),
        make_snapshot("P1", "BBB", Decimal("200")),
        make_snapshot("P2", "CCC", Decimal("50")),
    ]


def test_groups_by_portfolio(three_snapshots):
    groups = aggregate(three_snapshots, AggregationDimension.PORTFOLIO)

    assert list(groups) == ["P1", "P2"]
    assert groups["P1"].total_value == Decimal("300")
    assert groups["P1"].asset_count == 2
    assert groups["P2"].total_value == Decimal("50")
    assert groups["P2"].asset_count == 1


@pytest.mark.parametrize("dimension", list(AggregationDimension))
def test_value_is_conserved_for_every_dimension(three_snapshots, dimension):
    groups = aggregate(three_snapshots, dimension, {"AAA": "STOCK"})

    assert total_value(groups) == Decimal("350")
    assert conservation_gap(three_snapshots, groups) == Decimal("0")
    assert sum(g.member_count for g in groups.values()) == len(three_snapshots)


def test_group_count_matches_distinct_keys(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA"),
        make_snapshot("P2", "AAA"),
        make_snapshot("P1", "BBB"),
        make_snapshot("P3", "AAA", snapshot_date=date(2024, 1, 16)),
    ]

    assert len(aggregate(snapshots, "portfolio")) == 3
    assert len(aggregate(snapshots, "asset")) == 2
    assert aggregate(snapshots, "asset")["AAA"].portfolio_count == 3


def test_aggregation_is_idempotent_and_pure(three_snapshots):
    before = list(three_snapshots)

    first = aggregate(three_snapshots, "asset")
    second = aggregate(three_snapshots, "asset")

    assert [g.to_dict() for g in first.values()] == [g.to_dict() for g in second.values()]
    assert first["AAA"] is not second["AAA"]
    assert three_snapshots == before


def test_null_value_counts_as_zero_and_keeps_member(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA", Decimal("100")),
        make_snapshot("P1", "BBB", None),
    ]

    groups = aggregate(snapshots, AggregationDimension.PORTFOLIO)

    assert groups["P1"].total_value == Decimal("100")
    assert groups["P1"].member_count == 2
    assert groups["P1"].coerced_values == 1


def test_nan_and_garbage_values_are_coerced(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA", Decimal("NaN")),
        make_snapshot("P1", "BBB", "not-a-number"),
        make_snapshot("P1", "CCC", Decimal("25.50")),
    ]

    groups = aggregate(snapshots, "portfolio")

    assert groups["P1"].total_value == Decimal("25.50")
    assert groups["P1"].member_count == 3
    assert groups["P1"].coerced_values == 2


def test_asset_type_falls_back_to_unknown(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA"),
        make_snapshot("P1", "BBB", asset_type="BOND"),
        make_snapshot("P1", "ZZZ"),
    ]

    groups = aggregate(snapshots, "asset_type", {"AAA": "STOCK"})

    assert set(groups) == {"STOCK", "BOND", UNKNOWN_ASSET_TYPE}
    assert groups[UNKNOWN_ASSET_TYPE].asset_symbols == {"ZZZ"}


def test_lookup_wins_over_record_asset_type(make_snapshot):
    groups = aggregate([make_snapshot("P1", "AAA", asset_type="ETF")], "asset_type", {"AAA": "STOCK"})

    assert list(groups) == ["STOCK"]


def test_unknown_dimension_is_rejected(three_snapshots):
    with pytest.raises(ConfigurationError):
        aggregate(three_snapshots, "sector")

    with pytest.raises(ConfigurationError):
        resolve_dimension(None)


def test_dimension_strings_are_case_insensitive():
    assert resolve_dimension(" Asset_Type ") is AggregationDimension.ASSET_TYPE


def test_sorted_groups_orders_by_key(make_snapshot):
    snapshots = [make_snapshot("P9", "AAA"), make_snapshot("P1", "BBB"), make_snapshot("P5", "CCC")]

    groups = aggregate(snapshots, "portfolio")

    assert list(groups) == ["P9", "P1", "P5"]
    assert [g.key for g in sorted_groups(groups)] == ["P1", "P5", "P9"]


def test_empty_input_gives_no_groups():
    assert aggregate([], "portfolio") == {}


def test_averages(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA", Decimal("100"), quantity=Decimal("4"), return_percentage=Decimal("10")),
        make_snapshot("P1", "BBB", Decimal("200"), quantity=Decimal("1"), return_percentage=Decimal("-2")),
    ]

    group = aggregate(snapshots, "portfolio")["P1"]

    assert group.total_quantity == Decimal("5")
    assert group.average_price == Decimal("60")
    assert group.average_return == Decimal("4")


def test_profit_and_loss_fields_are_summed(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA", total_pl=Decimal("10"), unrealized_pl=Decimal("7"), realized_pl=Decimal("3")),
        make_snapshot("P1", "BBB", total_pl=Decimal("-4"), unrealized_pl=Decimal("-4"), realized_pl=None),
    ]

    group = aggregate(snapshots, "portfolio")["P1"]

    assert group.total_pl == Decimal("6")
    assert group.unrealized_pl == Decimal("3")
    assert group.realized_pl == Decimal("3")


def test_timeline_groups_by_date_then_type(make_snapshot):
    older = date(2024, 1, 1)
    newer = date(2024, 2, 1)
    snapshots = [
        make_snapshot("P1", "AAA", Decimal("10"), snapshot_date=older),
        make_snapshot("P1", "BBB", Decimal("20"), snapshot_date=newer),
        make_snapshot("P1", "AAA", Decimal("30"), snapshot_date=newer),
    ]

    timeline = aggregate_timeline(snapshots, {"AAA": "STOCK", "BBB": "BOND"})

    assert list(timeline) == [newer, older]
    assert list(timeline[newer]) == ["BOND", "STOCK"]
    assert timeline[newer]["STOCK"].total_value == Decimal("30")
    assert timeline[older]["STOCK"].total_value == Decimal("10")


def test_summarize_page(make_snapshot):
    snapshots = [
        make_snapshot("P1", "AAA", snapshot_date=date(2024, 1, 1)),
        make_snapshot("P1", "AAA", snapshot_date=date(2024, 3, 1), granularity=SnapshotGranularity.MONTHLY),
        make_snapshot("P1", "BBB", snapshot_date=date(2024, 2, 1)),
    ]

    stats = summarize_page(snapshots)

    assert stats.total_snapshots == 3
    assert stats.by_granularity == {"DAILY": 2, "MONTHLY": 1}
    assert stats.latest_snapshot_date == date(2024, 3, 1)
    assert stats.oldest_snapshot_date == date(2024, 1, 1)


def test_summarize_empty_page():
    stats = summarize_page([])

    assert stats.total_snapshots == 0
    assert stats.latest_snapshot_date is None
