from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Optional

from sortedcontainers import SortedDict

from blended_fee.estimator.fee_estimation import FeeByTarget, Snapshot

log = logging.getLogger(__name__)


def filter_estimates(snapshot: Snapshot, floor: float) -> FeeByTarget:
    """Estimates of one snapshot that are at or above the floor."""
    estimates: FeeByTarget = SortedDict()
    for target, fee in snapshot.fee_estimates.items():
        if fee < floor:
            log.warning(
                f"Fee estimate from {snapshot.source} for target {target} was below the minimum of {floor}."
            )
            continue
        estimates[target] = fee
    return estimates


def extends_frontier(merged: FeeByTarget, min_fee: Optional[float], target: int, fee: float) -> bool:
    if len(merged) == 0:
        return True
    assert min_fee is not None
    # SortedDict keeps keys ascending, the last one is the longest horizon accepted so far
    max_target: int = merged.peekitem(-1)[0]
    return target > max_target and fee < min_fee


def merge_fee_estimates(snapshots: Iterable[Snapshot], floor: float = 0) -> FeeByTarget:
    """
    Fold ranked snapshots into one curve where fees strictly fall as the target grows.

    A point is accepted only if it reaches further than every merged target while being
    cheaper than every merged fee, so a lower ranked source can extend the curve but never
    override or undercut what a higher ranked one already established.
    """
    merged: FeeByTarget = SortedDict()
    min_fee: Optional[float] = None

    for snapshot in snapshots:
        for target, fee in filter_estimates(snapshot, floor).items():
            if extends_frontier(merged, min_fee, target, fee):
                log.debug(f"Adding estimate from {snapshot.source} with target {target} and fee {fee}")
                merged[target] = fee
                min_fee = fee

    log.debug(f"Final merged estimates: {dict(merged)}")
    return merged


def is_monotonically_decreasing(estimates: FeeByTarget) -> bool:
    fees: Sequence[float] = list(estimates.values())
    return all(a > b for a, b in zip(fees, fees[1:]))
