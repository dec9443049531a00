from __future__ import annotations

import pytest

from blended_fee._tests.util.misc import make_snapshot
from blended_fee.estimator.fee_estimation import SourceCategory
from blended_fee.estimator.relevance import filter_relevant, rank_snapshots
from blended_fee.util.errors import NoRelevantSources


def test_filter_relevant_keeps_sources_within_delta() -> None:
    snapshots = [
        make_snapshot("a", 1000, {1: 10}, order=0),
        make_snapshot("b", 999, {1: 10}, order=1),
        make_snapshot("c", 998, {1: 10}, order=2),
    ]
    assert [s.source for s in filter_relevant(snapshots, 1)] == ["a", "b"]
    assert [s.source for s in filter_relevant(snapshots, 2)] == ["a", "b", "c"]
    assert [s.source for s in filter_relevant(snapshots, 0)] == ["a"]


def test_filter_relevant_logs_dropped_sources(caplog: pytest.LogCaptureFixture) -> None:
    snapshots = [make_snapshot("fresh", 1000, {}), make_snapshot("stale", 990, {}, order=1)]
    filter_relevant(snapshots, 1)
    assert "Data point from stale at block 990 was filtered out" in caplog.text


def test_filter_relevant_without_snapshots() -> None:
    with pytest.raises(NoRelevantSources, match="No data points could be fetched from any provider"):
        filter_relevant([], 1)


def test_filter_relevant_with_negative_delta() -> None:
    with pytest.raises(NoRelevantSources, match="No relevant data points available"):
        filter_relevant([make_snapshot("a", 1000, {1: 10})], -1)


def test_rank_live_before_historical() -> None:
    historical = make_snapshot("esplora", 1001, {}, category=SourceCategory.HISTORICAL, order=0)
    live = make_snapshot("mempool", 1000, {}, category=SourceCategory.LIVE, order=1)
    assert [s.source for s in rank_snapshots([historical, live])] == ["mempool", "esplora"]
    assert [s.source for s in rank_snapshots([live, historical])] == ["mempool", "esplora"]


def test_rank_highest_block_first_within_category() -> None:
    snapshots = [
        make_snapshot("mempool1", 999, {}, category=SourceCategory.LIVE, order=0),
        make_snapshot("mempool2", 1000, {}, category=SourceCategory.LIVE, order=1),
        make_snapshot("mempool3", 999, {}, category=SourceCategory.LIVE, order=2),
    ]
    ranked = rank_snapshots(snapshots)
    assert ranked[0].block_height == 1000
    assert [s.source for s in ranked] == ["mempool2", "mempool1", "mempool3"]


def test_rank_ties_keep_registration_order() -> None:
    snapshots = [make_snapshot(f"source{order}", 1000, {}, order=order) for order in (2, 0, 1)]
    assert [s.source for s in rank_snapshots(snapshots)] == ["source0", "source1", "source2"]
