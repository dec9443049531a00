from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Dict, Optional

from blended_fee.estimator.constants import FALLBACK_BLOCK_TARGET, VBYTES_PER_KVB
from blended_fee.estimator.fee_estimation import FeeByTarget, Snapshot

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScaledEstimates:
    fee_by_block_target: Dict[int, int]
    min_relay_feerate: int


def highest_min_relay_fee_rate(snapshots: Iterable[Snapshot]) -> Optional[float]:
    rates = [snapshot.min_relay_fee_rate for snapshot in snapshots if snapshot.min_relay_fee_rate is not None]
    if len(rates) == 0:
        return None
    return max(rates)


def effective_floor(fee_minimum: float, min_relay_fee_rate: Optional[float]) -> float:
    if min_relay_fee_rate is None:
        return fee_minimum
    return max(fee_minimum, min_relay_fee_rate)


def to_sat_per_kvb(fee: float, fee_multiplier: float) -> int:
    # always round up; the inner round() strips float noise such as 1.1 * 1000 == 1100.0000000000002
    return math.ceil(round(fee * fee_multiplier * VBYTES_PER_KVB, 6))


def apply_floor_and_scale(
    merged: FeeByTarget,
    fee_minimum: float,
    fee_multiplier: float,
    min_relay_fee_rate: Optional[float] = None,
) -> ScaledEstimates:
    floor = effective_floor(fee_minimum, min_relay_fee_rate)

    fee_by_block_target: Dict[int, int] = {}
    for target, fee in merged.items():
        if fee < floor:
            log.warning(f"Fee estimate for target {target} was below the effective floor of {floor}.")
            continue
        fee_by_block_target[target] = to_sat_per_kvb(fee, fee_multiplier)

    scaled_floor = to_sat_per_kvb(floor, fee_multiplier)
    if len(fee_by_block_target) == 0:
        log.warning(f"No estimates above the floor of {floor}, falling back to a single estimate at the floor.")
        fee_by_block_target[FALLBACK_BLOCK_TARGET] = scaled_floor

    return ScaledEstimates(fee_by_block_target=fee_by_block_target, min_relay_feerate=scaled_floor)
