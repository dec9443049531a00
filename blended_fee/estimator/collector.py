from __future__ import annotations

import asyncio
import logging
import traceback
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import List, Optional

from blended_fee.estimator.fee_estimation import Snapshot
from blended_fee.estimator.provider_interface import Provider
from blended_fee.util.errors import InvalidData, SourceUnavailable

log = logging.getLogger(__name__)


@contextmanager
def log_provider_errors(provider: Provider) -> Iterator[None]:
    """
    Log and consume anything the provider raises. Expected failures are logged
    without a traceback, anything else gets one.
    """
    try:
        yield
    except (SourceUnavailable, InvalidData) as e:
        log.error(f"Error fetching data from provider {provider.name}: {type(e).__name__}: {e}")
    except Exception as e:
        log.error(
            f"Unexpected error fetching data from provider {provider.name}: {type(e).__name__}: {e}\n"
            f"{traceback.format_exc()}"
        )


async def fetch_snapshot(provider: Provider, order: int) -> Optional[Snapshot]:
    with log_provider_errors(provider):
        data = await provider.get_all_data()
        return Snapshot.create(source=provider.name, category=provider.category, order=order, data=data)
    return None


async def collect_snapshots(providers: Sequence[Provider]) -> List[Snapshot]:
    """
    Ask every provider at once. Providers that fail are left out, the result keeps
    registration order and may be empty.
    """
    results = await asyncio.gather(*(fetch_snapshot(provider, order) for order, provider in enumerate(providers)))
    snapshots = [snapshot for snapshot in results if snapshot is not None]
    log.debug(f"Collected {len(snapshots)} of {len(providers)} snapshots")
    return snapshots
