from __future__ import annotations

import asyncio
import contextlib
import functools
import hashlib
import logging
import signal
import sys
import time
import traceback
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiohttp
import click
from aiohttp import web

from blended_fee.estimator.data_provider_manager import DataProviderManager
from blended_fee.providers.registry import create_data_provider_manager
from blended_fee.util.blended_logging import initialize_logging
from blended_fee.util.config import SERVICE_NAME, EstimatorSettings, load_config
from blended_fee.util.default_root import DEFAULT_ROOT_PATH
from blended_fee.util.errors import NoRelevantSources
from blended_fee.util.network import WebServer

log = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@web.middleware
async def etag_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    response = await handler(request)
    if not isinstance(response, web.Response) or response.status != 200 or not isinstance(response.body, bytes):
        return response

    etag = f"\"{hashlib.sha1(response.body).hexdigest()}\""
    response.headers["ETag"] = etag
    if etag_matches(request.headers.get("If-None-Match"), etag):
        headers = {"ETag": etag}
        if "Cache-Control" in response.headers:
            headers["Cache-Control"] = response.headers["Cache-Control"]
        return web.Response(status=304, headers=headers)
    return response


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    """Weak comparison of an `If-None-Match` header against `etag`."""
    if if_none_match is None:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*" or candidate.removeprefix("W/") == etag:
            return True
    return False


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    start = time.monotonic()
    try:
        response = await handler(request)
    except web.HTTPException as e:
        log.info(f"{request.method} {request.path_qs} {e.status} {(time.monotonic() - start) * 1000:.0f}ms")
        raise
    log.info(f"{request.method} {request.path_qs} {response.status} {(time.monotonic() - start) * 1000:.0f}ms")
    return response


@dataclass
class FeeEstimatorServer:
    root_path: Path
    config: Dict[str, Any]
    log: logging.Logger
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)
    manager: Optional[DataProviderManager] = None
    webserver: Optional[WebServer] = None

    @property
    def settings(self) -> EstimatorSettings:
        return EstimatorSettings.from_config(self.config)

    @contextlib.asynccontextmanager
    async def manage(self, manager: Optional[DataProviderManager] = None) -> AsyncIterator[FeeEstimatorServer]:
        if self.webserver is not None:
            raise RuntimeError("FeeEstimatorServer already started")

        async with aiohttp.ClientSession() as session:
            self.manager = manager if manager is not None else create_data_provider_manager(session, self.config)
            async with self.manager.cache.manage():
                self.log.info("Starting Fee Estimator HTTP Server.")
                self.webserver = await WebServer.create(
                    host=self.config.get("host", "0.0.0.0"),
                    port=int(self.config.get("port", 3000)),
                    routes=[
                        web.get("/v1/fee-estimates", self.fee_estimates_handler),
                        web.get("/health/ready", self.health_handler),
                        web.get("/health/live", self.health_handler),
                    ],
                    middlewares=[request_logging_middleware, cors_middleware, etag_middleware],
                )
                self.log.info(f"Fee Estimates available at {self.webserver.url('v1', 'fee-estimates')}")
                try:
                    yield self
                finally:
                    self.log.info("Wait for Fee Estimator HTTP Server shutdown.")
                    await self.webserver.close()
                    self.webserver = None

    def close(self) -> None:
        self.log.info("Stop triggered for Fee Estimator HTTP Server.")
        self.shutdown_event.set()

    async def fee_estimates_handler(self, request: web.Request) -> web.Response:
        assert self.manager is not None
        try:
            estimates = await self.manager.get_data()
        except NoRelevantSources as e:
            self.log.error(f"Error fetching fee estimates: {e}")
            return web.Response(status=500, text="Error fetching fee estimates")
        except Exception as e:
            self.log.error(f"Error fetching fee estimates: {type(e).__name__}: {e}\n{traceback.format_exc()}")
            return web.Response(status=500, text="Error fetching fee estimates")

        return web.json_response(
            estimates.to_json_dict(),
            headers={"Cache-Control": f"public, max-age={int(self.settings.cache_ttl)}"},
        )

    async def health_handler(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    def _accept_signal(self, signal_: signal.Signals) -> None:
        self.log.info("Received signal %s (%s), shutting down.", signal_.name, signal_.value)
        self.close()

    def setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        if sys.platform == "win32" or sys.platform == "cygwin":
            for signal_ in [signal.SIGINT, signal.SIGTERM]:
                signal.signal(
                    signal_,
                    lambda signum, _frame: loop.call_soon_threadsafe(self._accept_signal, signal.Signals(signum)),
                )
        else:
            for signal_ in [signal.SIGINT, signal.SIGTERM]:
                loop.add_signal_handler(signal_, functools.partial(self._accept_signal, signal_))


async def async_start(root_path: Path) -> int:
    service_config = load_config(root_path=root_path, filename="config.yaml", sub_config=SERVICE_NAME)
    initialize_logging(
        service_name=SERVICE_NAME,
        logging_config=service_config.get("logging", {}),
        root_path=root_path,
    )

    server = FeeEstimatorServer(root_path, service_config, log)
    async with server.manage():
        server.setup_signal_handlers()
        await server.shutdown_event.wait()

    return 0


@click.command()
@click.option(
    "-r",
    "--root-path",
    type=click.Path(exists=True, writable=True, file_okay=False),
    default=DEFAULT_ROOT_PATH,
    show_default=True,
    help="Config file root",
)
def main(root_path: str = str(DEFAULT_ROOT_PATH)) -> int:
    return asyncio.run(async_start(Path(root_path)))


if __name__ == "__main__":
    sys.exit(main())
