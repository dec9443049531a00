from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from ipaddress import ip_address
from typing import Any, Optional

from aiohttp import web
from aiohttp.log import web_logger
from typing_extensions import final


@final
@dataclass
class WebServer:
    """An aiohttp application served on `host:port`. A port of 0 binds a free port."""

    app: web.Application
    host: str
    port: int
    shutdown_timeout: float = 60
    _runner: Optional[web.AppRunner] = field(default=None, init=False, repr=False)

    @classmethod
    async def create(
        cls,
        host: str,
        port: int,
        routes: Iterable[web.RouteDef] = (),
        middlewares: Iterable[Any] = (),
        shutdown_timeout: float = 60,
        start: bool = True,
    ) -> WebServer:
        app = web.Application(logger=web_logger, middlewares=list(middlewares))
        app.add_routes(routes)
        self = cls(app=app, host=host, port=port, shutdown_timeout=shutdown_timeout)
        if start:
            await self.start()
        return self

    @property
    def started(self) -> bool:
        return self._runner is not None

    def add_routes(self, routes: Iterable[web.RouteDef]) -> None:
        self.app.add_routes(routes)

    async def start(self) -> None:
        if self._runner is not None:
            raise RuntimeError("WebServer already started")
        runner = web.AppRunner(self.app, access_log=None, shutdown_timeout=self.shutdown_timeout)
        await runner.setup()
        await web.TCPSite(runner, self.host, self.port).start()
        self._runner = runner
        if self.port == 0:
            self.port = bound_port(runner.addresses)

    def url(self, *segments: str) -> str:
        return f"http://{self.host}:{self.port}/" + "/".join(segments)

    async def close(self) -> None:
        runner = self._runner
        if runner is None:
            raise RuntimeError("WebServer not started")
        self._runner = None
        await runner.cleanup()


def bound_port(addresses: Sequence[Any], prefer_ipv6: bool = False) -> int:
    """Port of the first listening socket of the preferred IP version, else of the first socket."""
    wanted = 6 if prefer_ipv6 else 4
    for address in addresses:
        if ip_address(address[0]).version == wanted:
            return int(address[1])
    return int(addresses[0][1])
