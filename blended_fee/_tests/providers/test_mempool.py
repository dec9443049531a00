from __future__ import annotations

from typing import Dict

import aiohttp
import pytest

from blended_fee._tests.util.misc import (
    UNREACHABLE_URL,
    FakeApiServer,
    FakeResponse,
    json_response,
    make_block_hash,
    text_response,
)
from blended_fee.estimator.fee_estimation import SourceCategory
from blended_fee.providers.mempool import MempoolProvider
from blended_fee.util.errors import InvalidData, SourceUnavailable

RECOMMENDED = '{"fastestFee": 25, "halfHourFee": 12, "hourFee": 8, "economyFee": 4, "minimumFee": 1}'


def mempool_responses(height: int = 840000, fees: str = RECOMMENDED) -> Dict[str, FakeResponse]:
    return {
        "/api/blocks/tip/height": text_response(f"{height}\n"),
        "/api/blocks/tip/hash": text_response(make_block_hash(height)),
        "/api/v1/fees/recommended": json_response(fees),
    }


@pytest.mark.anyio
async def test_get_all_data() -> None:
    async with FakeApiServer.managed(mempool_responses()) as server:
        async with aiohttp.ClientSession() as session:
            provider = MempoolProvider(session, server.url, depth=6, timeout=5)
            data = await provider.get_all_data()

    assert provider.category is SourceCategory.LIVE
    assert data.block_height == 840000
    assert data.block_hash == make_block_hash(840000)
    assert dict(data.fee_estimates) == {1: 25, 3: 12, 6: 8}
    assert data.min_relay_fee_rate is None


@pytest.mark.anyio
@pytest.mark.parametrize("depth, expected", [(1, {1: 25}), (3, {1: 25, 3: 12}), (144, {1: 25, 3: 12, 6: 8})])
async def test_depth_limits_targets(depth: int, expected: Dict[int, float]) -> None:
    async with FakeApiServer.managed(mempool_responses()) as server:
        async with aiohttp.ClientSession() as session:
            provider = MempoolProvider(session, server.url, depth=depth, timeout=5)
            assert dict(await provider.get_fee_estimates()) == expected


@pytest.mark.anyio
async def test_falls_back_when_primary_fails() -> None:
    broken = {path: text_response("oops", status=500) for path in mempool_responses()}
    async with FakeApiServer.managed(broken) as primary, FakeApiServer.managed(mempool_responses()) as fallback:
        async with aiohttp.ClientSession() as session:
            provider = MempoolProvider(session, primary.url, depth=6, timeout=5, fallback_url=fallback.url)
            data = await provider.get_all_data()

    assert data.block_height == 840000
    assert sorted(primary.paths()) == sorted(mempool_responses())
    assert sorted(fallback.paths()) == sorted(mempool_responses())


@pytest.mark.anyio
async def test_http_error_without_fallback() -> None:
    responses = mempool_responses()
    responses["/api/v1/fees/recommended"] = text_response("unavailable", status=503)
    async with FakeApiServer.managed(responses) as server:
        async with aiohttp.ClientSession() as session:
            provider = MempoolProvider(session, server.url, depth=6, timeout=5)
            with pytest.raises(SourceUnavailable, match="HTTP error 503"):
                await provider.get_all_data()


@pytest.mark.anyio
async def test_unreachable_source() -> None:
    async with aiohttp.ClientSession() as session:
        provider = MempoolProvider(session, UNREACHABLE_URL, depth=6, timeout=5)
        with pytest.raises(SourceUnavailable):
            await provider.get_block_height()


@pytest.mark.anyio
async def test_timeout() -> None:
    async with FakeApiServer.managed(mempool_responses()) as server:
        server.delay = 1
        async with aiohttp.ClientSession() as session:
            provider = MempoolProvider(session, server.url, depth=6, timeout=0.05)
            with pytest.raises(SourceUnavailable, match="timed out"):
                await provider.get_block_height()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "path, response",
    [
        ("/api/blocks/tip/hash", text_response("not-a-hash")),
        ("/api/blocks/tip/height", text_response("tip")),
        ("/api/v1/fees/recommended", json_response("{not json")),
        ("/api/v1/fees/recommended", json_response('{"fastestFee": 25, "halfHourFee": 12}')),
        ("/api/v1/fees/recommended", json_response('{"fastestFee": 25, "halfHourFee": 0, "hourFee": 8}')),
        ("/api/v1/fees/recommended", json_response("[25, 12, 8]")),
    ],
)
async def test_invalid_data(path: str, response: FakeResponse) -> None:
    responses = mempool_responses()
    responses[path] = response
    async with FakeApiServer.managed(responses) as server:
        async with aiohttp.ClientSession() as session:
            provider = MempoolProvider(session, server.url, depth=6, timeout=5)
            with pytest.raises(InvalidData):
                await provider.get_all_data()


def test_transform_fee_data_rejects_booleans() -> None:
    provider = MempoolProvider(None, "https://mempool.example", depth=6, timeout=5)  # type: ignore[arg-type]
    with pytest.raises(InvalidData, match="hourFee"):
        provider.transform_fee_data({"fastestFee": 3, "halfHourFee": 2, "hourFee": True})
