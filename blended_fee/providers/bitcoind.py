from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Optional, Sequence, Union

import aiohttp
from sortedcontainers import SortedDict

from blended_fee.estimator.constants import SATS_PER_BTC, VBYTES_PER_KVB
from blended_fee.estimator.fee_estimation import FeeByTarget, ProviderData, SourceCategory, round_fee_rate
from blended_fee.estimator.provider_interface import gather_provider_data
from blended_fee.providers.http_client import parse_block_hash, parse_block_height
from blended_fee.util.errors import InvalidData, SourceUnavailable

log = logging.getLogger(__name__)

EstimateMode = Literal["ECONOMICAL", "CONSERVATIVE"]


def btc_per_kvb_to_sat_per_vb(fee_rate: float) -> float:
    return fee_rate * SATS_PER_BTC / VBYTES_PER_KVB


@dataclass
class BitcoindRpcClient:
    """
    Minimal JSON-RPC 1.0 client for bitcoind. Every call is a POST to the node's
    root URL; a list of requests is sent as a single batch.
    """

    session: aiohttp.ClientSession
    provider: str
    url: str
    auth: Optional[aiohttp.BasicAuth]
    timeout: float
    _ids: Iterator[int] = field(default_factory=itertools.count, repr=False)

    def make_request(self, method: str, params: Sequence[Any] = ()) -> Dict[str, Any]:
        return {"jsonrpc": "1.0", "id": next(self._ids), "method": method, "params": list(params)}

    async def post(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> Any:
        try:
            async with self.session.post(
                self.url, json=payload, auth=self.auth, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if not response.ok:
                    raise SourceUnavailable(self.provider, f"RPC HTTP error {response.status}")
                return await response.json(content_type=None)
        except json.JSONDecodeError as e:
            raise InvalidData(self.provider, f"Malformed RPC response: {e}") from e
        except asyncio.TimeoutError as e:
            raise SourceUnavailable(self.provider, f"RPC request timed out after {self.timeout} seconds") from e
        except aiohttp.ClientError as e:
            raise SourceUnavailable(self.provider, f"RPC request failed: {type(e).__name__}: {e}") from e

    async def call(self, method: str, *params: Any) -> Any:
        response = await self.post(self.make_request(method, params))
        if not isinstance(response, dict):
            raise InvalidData(self.provider, f"Malformed {method} response: {response!r}")
        if response.get("error") is not None:
            raise SourceUnavailable(self.provider, f"{method} failed: {response['error']}")
        log.debug(f"{method}: {response.get('result')}")
        return response.get("result")

    async def batch(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if len(requests) == 0:
            return []
        responses = await self.post(requests)
        if not isinstance(responses, list) or not all(isinstance(r, dict) for r in responses):
            raise InvalidData(self.provider, f"Malformed batch response: {responses!r}")
        # the node may answer a batch in any order
        by_id = {r.get("id"): r for r in responses}
        try:
            return [by_id[request["id"]] for request in requests]
        except KeyError as e:
            raise InvalidData(self.provider, f"Batch response is missing request id {e}") from None


class BitcoindProvider:
    """
    Historical estimates from a bitcoind node's `estimatesmartfee`, plus the node's
    mempool minimum fee as the relay floor.
    """

    name: str
    category: SourceCategory
    targets: List[int]
    mode: EstimateMode
    rpc: BitcoindRpcClient

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        user: Optional[str],
        password: Optional[str],
        targets: Sequence[int],
        timeout: float,
        mode: EstimateMode = "ECONOMICAL",
        name: str = "bitcoind",
        category: SourceCategory = SourceCategory.HISTORICAL,
    ) -> None:
        self.name = name
        self.category = category
        self.targets = sorted(set(targets))
        self.mode = mode
        auth = aiohttp.BasicAuth(user, password or "") if user is not None else None
        self.rpc = BitcoindRpcClient(session=session, provider=name, url=url, auth=auth, timeout=timeout)

    def __repr__(self) -> str:
        # never include the credentials
        return f"BitcoindProvider(name={self.name!r}, url={self.rpc.url!r}, mode={self.mode!r})"

    async def get_block_height(self) -> int:
        return parse_block_height(self.name, await self.rpc.call("getblockcount"))

    async def get_block_hash(self) -> str:
        return parse_block_hash(self.name, await self.rpc.call("getbestblockhash"))

    async def get_fee_estimate(self, target: int) -> Optional[float]:
        result = await self.rpc.call("estimatesmartfee", target, self.mode)
        fee_rate = result.get("feerate") if isinstance(result, dict) else None
        if fee_rate is None:
            return None
        return btc_per_kvb_to_sat_per_vb(fee_rate)

    async def get_fee_estimates(self) -> FeeByTarget:
        requests = [self.rpc.make_request("estimatesmartfee", [target, self.mode]) for target in self.targets]
        responses = await self.rpc.batch(requests)

        fees: FeeByTarget = SortedDict()
        for target, response in zip(self.targets, responses):
            result = response.get("result")
            fee_rate = result.get("feerate") if isinstance(result, dict) else None
            if isinstance(fee_rate, (int, float)) and fee_rate > 0:
                fees[target] = btc_per_kvb_to_sat_per_vb(fee_rate)
                continue
            errors = result.get("errors") if isinstance(result, dict) else None
            log.warning(
                f"Error getting fee estimate for target {target}: {response.get('error') or errors or 'no feerate'}"
            )

        if len(fees) == 0:
            raise InvalidData(self.name, "Error getting fee estimates, no target returned a fee rate")
        return fees

    async def get_min_relay_fee_rate(self) -> Optional[float]:
        result = await self.rpc.call("getmempoolinfo")
        fee_rate = result.get("mempoolminfee") if isinstance(result, dict) else None
        if not isinstance(fee_rate, (int, float)) or fee_rate <= 0:
            raise InvalidData(self.name, "Error getting mempool min fee, mempoolminfee not found")
        return round_fee_rate(btc_per_kvb_to_sat_per_vb(fee_rate))

    async def get_all_data(self) -> ProviderData:
        return await gather_provider_data(self)
