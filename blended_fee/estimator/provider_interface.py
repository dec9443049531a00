from __future__ import annotations

import asyncio
from typing import Optional

from typing_extensions import Protocol

from blended_fee.estimator.fee_estimation import FeeByTarget, ProviderData, SourceCategory


class Provider(Protocol):
    """
    A source of chain state and fee estimates.

    Implementations apply their own timeouts and report any failure as
    `SourceUnavailable` or `InvalidData`. Nothing is shared between calls.
    """

    name: str
    category: SourceCategory

    async def get_block_height(self) -> int:
        """Best block height known to the source"""

    async def get_block_hash(self) -> str:
        """Hex hash of the best block known to the source"""

    async def get_fee_estimates(self) -> FeeByTarget:
        """Raw estimates in sat/vB, keyed by confirmation target"""

    async def get_min_relay_fee_rate(self) -> Optional[float]:
        """Lowest fee rate the source's mempool accepts, None if the source cannot tell"""

    async def get_all_data(self) -> ProviderData:
        """All of the above in one call, failing if any required part fails"""


async def gather_provider_data(provider: Provider) -> ProviderData:
    """Issue the individual calls concurrently, cancelling the rest as soon as one fails."""
    tasks = [
        asyncio.create_task(provider.get_block_height()),
        asyncio.create_task(provider.get_block_hash()),
        asyncio.create_task(provider.get_fee_estimates()),
        asyncio.create_task(provider.get_min_relay_fee_rate()),
    ]
    try:
        block_height, block_hash, fee_estimates, min_relay_fee_rate = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return ProviderData(
        block_height=block_height,
        block_hash=block_hash,
        fee_estimates=fee_estimates,
        min_relay_fee_rate=min_relay_fee_rate,
    )
