from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Collection
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest
from aiohttp import web
from sortedcontainers import SortedDict
from typing_extensions import Protocol, final

from blended_fee.estimator.fee_estimation import FeeByTarget, ProviderData, Snapshot, SourceCategory
from blended_fee.util.network import WebServer

# nothing listens on the discard port of localhost
UNREACHABLE_URL = "http://127.0.0.1:9"

Marks = Union[pytest.MarkDecorator, Collection[Union[pytest.MarkDecorator, pytest.Mark]]]


class DataCase(Protocol):
    marks: Marks

    @property
    def id(self) -> str: ...


def datacases(*cases: DataCase, _name: str = "case") -> pytest.MarkDecorator:
    return pytest.mark.parametrize(
        argnames=_name,
        argvalues=[pytest.param(case, id=case.id, marks=case.marks) for case in cases],
    )


def make_block_hash(height: int) -> str:
    return f"{height:064x}"


@dataclass
class FakeProvider:
    """In memory provider with a configurable answer, failure and latency."""

    name: str
    block_height: int
    fee_estimates: Dict[int, float] = field(default_factory=dict)
    min_relay_fee_rate: Optional[float] = None
    category: SourceCategory = SourceCategory.HISTORICAL
    block_hash: Optional[str] = None
    error: Optional[Exception] = None
    delay: float = 0
    wait_for: Optional[asyncio.Event] = None
    calls: int = 0

    async def get_block_height(self) -> int:
        return self.block_height

    async def get_block_hash(self) -> str:
        return self.block_hash if self.block_hash is not None else make_block_hash(self.block_height)

    async def get_fee_estimates(self) -> FeeByTarget:
        return SortedDict(self.fee_estimates)

    async def get_min_relay_fee_rate(self) -> Optional[float]:
        return self.min_relay_fee_rate

    async def get_all_data(self) -> ProviderData:
        self.calls += 1
        if self.wait_for is not None:
            await self.wait_for.wait()
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProviderData(
            block_height=await self.get_block_height(),
            block_hash=await self.get_block_hash(),
            fee_estimates=await self.get_fee_estimates(),
            min_relay_fee_rate=await self.get_min_relay_fee_rate(),
        )


# status, body, content type
FakeResponse = Tuple[int, str, str]


def json_response(body: str, status: int = 200) -> FakeResponse:
    return status, body, "application/json"


def text_response(body: str, status: int = 200) -> FakeResponse:
    return status, body, "text/plain"


@final
@dataclass
class FakeApiServer:
    """Serves canned responses by path and records every request it receives."""

    web_server: WebServer
    responses: Dict[str, FakeResponse] = field(default_factory=dict)
    requests: List[Tuple[str, str, Any]] = field(default_factory=list)
    delay: float = 0

    @classmethod
    @contextlib.asynccontextmanager
    async def managed(cls, responses: Optional[Dict[str, FakeResponse]] = None) -> AsyncIterator[FakeApiServer]:
        web_server = await WebServer.create(host="127.0.0.1", port=0, start=False)
        self = cls(web_server=web_server, responses={} if responses is None else responses)
        web_server.add_routes([web.route(method="*", path="/{path:.*}", handler=self.handler)])
        await web_server.start()
        try:
            yield self
        finally:
            await web_server.close()

    @property
    def url(self) -> str:
        return self.web_server.url().rstrip("/")

    async def handler(self, request: web.Request) -> web.Response:
        body: Any = None
        if request.can_read_body:
            body = await request.json()
        self.requests.append((request.method, request.path, body))

        if self.delay > 0:
            await asyncio.sleep(self.delay)

        response = self.responses.get(request.path)
        if response is None:
            return web.Response(status=404, text="Not Found")
        status, text, content_type = response
        return web.Response(status=status, text=text, content_type=content_type)

    def paths(self) -> List[str]:
        return [path for _, path, _ in self.requests]


def make_snapshot(
    source: str,
    block_height: int,
    fee_estimates: Dict[int, float],
    *,
    category: SourceCategory = SourceCategory.HISTORICAL,
    order: int = 0,
    min_relay_fee_rate: Optional[float] = None,
) -> Snapshot:
    return Snapshot.create(
        source=source,
        category=category,
        order=order,
        data=ProviderData(
            block_height=block_height,
            block_hash=make_block_hash(block_height),
            fee_estimates=SortedDict(fee_estimates),
            min_relay_fee_rate=min_relay_fee_rate,
        ),
    )
