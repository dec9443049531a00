from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import aiohttp
from sortedcontainers import SortedDict

from blended_fee.estimator.fee_estimation import FeeByTarget, ProviderData, SourceCategory
from blended_fee.estimator.provider_interface import gather_provider_data
from blended_fee.providers.http_client import RestApiClient
from blended_fee.util.errors import InvalidData

log = logging.getLogger(__name__)

# recommended fee field -> the confirmation target it stands for
BLOCK_TARGET_MAPPING: Dict[str, int] = {
    "fastestFee": 1,
    "halfHourFee": 3,
    "hourFee": 6,
}


class MempoolProvider:
    """
    Live estimates from a mempool.space compatible API.

    Only the targets at or below `depth` are reported, so a depth of 3 yields
    targets 1 and 3.
    """

    name: str
    category: SourceCategory
    depth: int
    client: RestApiClient

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        depth: int,
        timeout: float,
        fallback_url: Optional[str] = None,
        name: str = "mempool",
        category: SourceCategory = SourceCategory.LIVE,
    ) -> None:
        self.name = name
        self.category = category
        self.depth = depth
        self.client = RestApiClient(
            session=session, provider=name, url=url.rstrip("/"), timeout=timeout, fallback_url=fallback_url
        )

    def __repr__(self) -> str:
        return f"MempoolProvider(name={self.name!r}, url={self.client.url!r}, depth={self.depth})"

    async def get_block_height(self) -> int:
        return await self.client.get_tip_height()

    async def get_block_hash(self) -> str:
        return await self.client.get_tip_hash()

    async def get_fee_estimates(self) -> FeeByTarget:
        data = await self.client.get("/api/v1/fees/recommended", "json")
        return self.transform_fee_data(data)

    async def get_min_relay_fee_rate(self) -> Optional[float]:
        return None

    async def get_all_data(self) -> ProviderData:
        return await gather_provider_data(self)

    def transform_fee_data(self, data: Any) -> FeeByTarget:
        if not isinstance(data, dict):
            raise InvalidData(self.name, f"Invalid fee data: {data!r}")

        fee_estimates: FeeByTarget = SortedDict()
        for field, target in BLOCK_TARGET_MAPPING.items():
            value = data.get(field)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise InvalidData(self.name, f"Invalid fee data, bad or missing {field}: {value!r}")
            if target <= self.depth:
                fee_estimates[target] = float(value)
        return fee_estimates
