from __future__ import annotations

import logging
from typing import List, Optional

from blended_fee.estimator.collector import collect_snapshots
from blended_fee.estimator.constants import DEFAULT_FEE_MINIMUM, DEFAULT_FEE_MULTIPLIER, DEFAULT_MAX_HEIGHT_DELTA
from blended_fee.estimator.fee_estimation import Estimates, Snapshot
from blended_fee.estimator.merge import is_monotonically_decreasing, merge_fee_estimates
from blended_fee.estimator.post_process import apply_floor_and_scale, effective_floor, highest_min_relay_fee_rate
from blended_fee.estimator.provider_interface import Provider
from blended_fee.estimator.relevance import filter_relevant, rank_snapshots
from blended_fee.estimator.result_cache import ResultCache

log = logging.getLogger(__name__)


class DataProviderManager:
    """
    Blends the estimates of every registered provider into a single fee curve.

    Registration order matters: it breaks ties between sources of the same category
    at the same block height.
    """

    providers: List[Provider]
    cache: ResultCache[Estimates]
    max_height_delta: int
    fee_multiplier: float
    fee_minimum: float

    def __init__(
        self,
        max_height_delta: int = DEFAULT_MAX_HEIGHT_DELTA,
        fee_multiplier: float = DEFAULT_FEE_MULTIPLIER,
        fee_minimum: float = DEFAULT_FEE_MINIMUM,
        cache: Optional[ResultCache[Estimates]] = None,
    ) -> None:
        self.providers = []
        self.cache = cache if cache is not None else ResultCache(ttl=0)
        self.max_height_delta = max_height_delta
        self.fee_multiplier = fee_multiplier
        self.fee_minimum = fee_minimum

    def register_provider(self, provider: Provider) -> None:
        self.providers.append(provider)

    async def get_data(self) -> Estimates:
        cached = self.cache.get()
        if cached is not None:
            log.info(f"Got data from cache: {cached}")
            return cached
        return await self.cache.get_or_compute(self.compute_estimates)

    async def get_sorted_data_points(self) -> List[Snapshot]:
        snapshots = await collect_snapshots(self.providers)
        log.info(f"Fetched data points: {snapshots}")
        return rank_snapshots(snapshots)

    async def get_relevant_data_points(self) -> List[Snapshot]:
        snapshots = await collect_snapshots(self.providers)
        log.info(f"Fetched data points: {snapshots}")
        return rank_snapshots(filter_relevant(snapshots, self.max_height_delta))

    async def compute_estimates(self) -> Estimates:
        data_points = await self.get_relevant_data_points()
        seed = data_points[0]

        min_relay_fee_rate = highest_min_relay_fee_rate(data_points)
        floor = effective_floor(self.fee_minimum, min_relay_fee_rate)
        merged = merge_fee_estimates(data_points, floor)
        assert is_monotonically_decreasing(merged)

        scaled = apply_floor_and_scale(
            merged,
            fee_minimum=self.fee_minimum,
            fee_multiplier=self.fee_multiplier,
            min_relay_fee_rate=min_relay_fee_rate,
        )
        estimates = Estimates(
            current_block_height=seed.block_height,
            current_block_hash=seed.block_hash,
            fee_by_block_target=scaled.fee_by_block_target,
            min_relay_feerate=scaled.min_relay_feerate,
        )
        log.info(f"Got data: {estimates}")
        return estimates
