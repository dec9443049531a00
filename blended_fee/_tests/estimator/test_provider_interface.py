from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import pytest
from sortedcontainers import SortedDict

from blended_fee.estimator.fee_estimation import FeeByTarget, ProviderData, SourceCategory
from blended_fee.estimator.provider_interface import gather_provider_data
from blended_fee.util.errors import SourceUnavailable


@dataclass
class SplitProvider:
    name: str = "split"
    category: SourceCategory = SourceCategory.LIVE
    fail_hash: bool = False
    estimates_cancelled: bool = False

    async def get_block_height(self) -> int:
        return 1000

    async def get_block_hash(self) -> str:
        if self.fail_hash:
            raise SourceUnavailable(self.name, "HTTP 502")
        return "00" * 32

    async def get_fee_estimates(self) -> FeeByTarget:
        try:
            await asyncio.sleep(0 if not self.fail_hash else 10)
        except asyncio.CancelledError:
            self.estimates_cancelled = True
            raise
        return SortedDict({1: 5.0})

    async def get_min_relay_fee_rate(self) -> Optional[float]:
        return 1.0

    async def get_all_data(self) -> ProviderData:
        return await gather_provider_data(self)


@pytest.mark.anyio
async def test_gather_provider_data() -> None:
    data = await SplitProvider().get_all_data()
    assert data == ProviderData(
        block_height=1000,
        block_hash="00" * 32,
        fee_estimates=SortedDict({1: 5.0}),
        min_relay_fee_rate=1.0,
    )


@pytest.mark.anyio
async def test_gather_provider_data_cancels_the_rest_on_failure() -> None:
    provider = SplitProvider(fail_hash=True)
    with pytest.raises(SourceUnavailable, match="split: HTTP 502"):
        await asyncio.wait_for(provider.get_all_data(), timeout=5)
    assert provider.estimates_cancelled
