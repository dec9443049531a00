from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from sortedcontainers import SortedDict

from blended_fee.estimator.constants import FEE_RATE_PRECISION

# confirmation target (int, blocks) -> fee rate (float, sat/vB), always iterated in ascending target order
FeeByTarget = SortedDict


class SourceCategory(Enum):
    """Category of a source, lower value wins when ranking snapshots."""

    LIVE = 0  # mempool based, reflects what is waiting right now
    HISTORICAL = 1  # derived from recently confirmed blocks

    @classmethod
    def from_str(cls, value: str) -> SourceCategory:
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown source category: {value!r}") from None


def round_fee_rate(fee: float) -> float:
    return round(fee, FEE_RATE_PRECISION)


@dataclass(frozen=True)
class ProviderData:
    """
    Everything a provider reports in one go.

    Attributes:
        block_height (int): best block height known to the source
        block_hash (str): hex hash of that block
        fee_estimates (FeeByTarget): raw, unmerged estimates in sat/vB
        min_relay_fee_rate (Optional[float]): lowest rate the source's mempool accepts, if it reports one
    """

    block_height: int
    block_hash: str
    fee_estimates: FeeByTarget
    min_relay_fee_rate: Optional[float] = None


@dataclass(frozen=True)
class Snapshot:
    """
    ProviderData stamped with where it came from. Only lives for one collection cycle.

    `order` is the provider's registration index and breaks ranking ties.
    """

    source: str
    category: SourceCategory
    order: int
    block_height: int
    block_hash: str
    fee_estimates: FeeByTarget
    min_relay_fee_rate: Optional[float] = None

    @classmethod
    def create(cls, source: str, category: SourceCategory, order: int, data: ProviderData) -> Snapshot:
        fee_estimates: FeeByTarget = SortedDict(
            (target, round_fee_rate(fee)) for target, fee in data.fee_estimates.items()
        )
        return cls(
            source=source,
            category=category,
            order=order,
            block_height=data.block_height,
            block_hash=data.block_hash,
            fee_estimates=fee_estimates,
            min_relay_fee_rate=data.min_relay_fee_rate,
        )


@dataclass(frozen=True)
class Estimates:
    """
    The blended result served to clients. Fee rates are integer sat/kvB.

    One instance is shared by every reader of the cache, so the fee mapping is
    copied into a read-only view on construction.
    """

    current_block_height: int
    current_block_hash: str
    fee_by_block_target: Mapping[int, int]
    min_relay_feerate: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "fee_by_block_target", MappingProxyType(dict(self.fee_by_block_target)))

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "current_block_height": self.current_block_height,
            "current_block_hash": self.current_block_hash,
            "fee_by_block_target": {str(target): fee for target, fee in sorted(self.fee_by_block_target.items())},
            "min_relay_feerate": self.min_relay_feerate,
        }
