from __future__ import annotations

import aiohttp
import pytest
from aiohttp import web

from blended_fee.util.network import WebServer, bound_port


async def hello(request: web.Request) -> web.Response:
    return web.Response(text="hello")


@pytest.mark.anyio
async def test_web_server_binds_a_free_port() -> None:
    server = await WebServer.create(host="127.0.0.1", port=0, routes=[web.get("/hello", hello)])
    try:
        assert server.started
        assert server.port != 0
        assert server.url("a", "b") == f"http://127.0.0.1:{server.port}/a/b"
        async with aiohttp.ClientSession() as session:
            async with session.get(server.url("hello")) as response:
                assert response.status == 200
                assert await response.text() == "hello"

        with pytest.raises(RuntimeError, match="already started"):
            await server.start()
    finally:
        await server.close()

    assert not server.started
    with pytest.raises(RuntimeError, match="WebServer not started"):
        await server.close()


@pytest.mark.parametrize("prefer_ipv6, expected", [(False, 1), (True, 2)])
def test_bound_port(prefer_ipv6: bool, expected: int) -> None:
    addresses = [("::1", 2, 0, 0), ("127.0.0.1", 1)]
    assert bound_port(addresses, prefer_ipv6=prefer_ipv6) == expected


def test_bound_port_without_match() -> None:
    assert bound_port([("127.0.0.1", 5)], prefer_ipv6=True) == 5
