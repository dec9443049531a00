from __future__ import annotations

import logging
from typing import Any, Optional

import aiohttp
from sortedcontainers import SortedDict

from blended_fee.estimator.fee_estimation import FeeByTarget, ProviderData, SourceCategory
from blended_fee.estimator.provider_interface import gather_provider_data
from blended_fee.providers.http_client import RestApiClient
from blended_fee.util.errors import InvalidData

log = logging.getLogger(__name__)


class EsploraProvider:
    """Historical estimates from an Esplora API such as blockstream.info."""

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
        name: str = "esplora",
        category: SourceCategory = SourceCategory.HISTORICAL,
    ) -> None:
        self.name = name
        self.category = category
        self.depth = depth
        self.client = RestApiClient(
            session=session, provider=name, url=url.rstrip("/"), timeout=timeout, fallback_url=fallback_url
        )

    def __repr__(self) -> str:
        return f"EsploraProvider(name={self.name!r}, url={self.client.url!r}, depth={self.depth})"

    async def get_block_height(self) -> int:
        return await self.client.get_tip_height()

    async def get_block_hash(self) -> str:
        return await self.client.get_tip_hash()

    async def get_fee_estimates(self) -> FeeByTarget:
        data = await self.client.get("/api/fee-estimates", "json")
        return self.transform_fee_data(data)

    async def get_min_relay_fee_rate(self) -> Optional[float]:
        return None

    async def get_all_data(self) -> ProviderData:
        return await gather_provider_data(self)

    def transform_fee_data(self, data: Any) -> FeeByTarget:
        if not isinstance(data, dict):
            raise InvalidData(self.name, f"Invalid fee data: {data!r}")

        fee_estimates: FeeByTarget = SortedDict()
        for key, value in data.items():
            try:
                target = int(key)
                fee = float(value)
            except (TypeError, ValueError):
                log.debug(f"Ignoring non numeric fee estimate {key!r}: {value!r}")
                continue
            if 0 < target <= self.depth:
                fee_estimates[target] = fee
        return fee_estimates
