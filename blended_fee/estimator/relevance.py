from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import List, Tuple

from blended_fee.estimator.fee_estimation import Snapshot
from blended_fee.util.errors import NoRelevantSources

log = logging.getLogger(__name__)


def filter_relevant(snapshots: Sequence[Snapshot], max_height_delta: int) -> List[Snapshot]:
    """
    Drop snapshots lagging more than `max_height_delta` blocks behind the best one.
    Their mempool view is stale and must not be blended with fresher data.
    """
    if len(snapshots) == 0:
        raise NoRelevantSources("No data points could be fetched from any provider")

    best_height = max(snapshot.block_height for snapshot in snapshots)
    relevant: List[Snapshot] = []
    for snapshot in snapshots:
        if best_height - snapshot.block_height <= max_height_delta:
            relevant.append(snapshot)
        else:
            log.warning(
                f"Data point from {snapshot.source} at block {snapshot.block_height} was filtered out "
                f"due to relevancy threshold (best block {best_height}, max delta {max_height_delta})."
            )

    if len(relevant) == 0:
        raise NoRelevantSources()
    return relevant


def rank_key(snapshot: Snapshot) -> Tuple[int, int, int]:
    return snapshot.category.value, -snapshot.block_height, snapshot.order


def rank_snapshots(snapshots: Sequence[Snapshot]) -> List[Snapshot]:
    """Live sources first, then the highest block, then registration order."""
    return sorted(snapshots, key=rank_key)
