from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

import aiohttp

from blended_fee.estimator.constants import BLOCK_HASH_PATTERN
from blended_fee.util.errors import InvalidData, SourceUnavailable

log = logging.getLogger(__name__)

ResponseType = Literal["json", "text"]


async def fetch_data(
    session: aiohttp.ClientSession,
    provider: str,
    url: str,
    response_type: ResponseType,
    timeout: float,
) -> Any:
    """
    GET `url` and return the body parsed as JSON or as stripped text.

    Raises SourceUnavailable for connection problems, timeouts and non 2xx statuses,
    InvalidData for bodies that are not valid JSON when JSON was expected.
    """
    log.debug(f'Starting fetch request to "{url}"')
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if not response.ok:
                raise SourceUnavailable(provider, f"HTTP error {response.status} from {url}")
            if response_type == "json":
                return await response.json(content_type=None)
            text: str = await response.text()
            return text.strip()
    except json.JSONDecodeError as e:
        raise InvalidData(provider, f"Malformed JSON from {url}: {e}") from e
    except asyncio.TimeoutError as e:
        raise SourceUnavailable(provider, f"Request to {url} timed out after {timeout} seconds") from e
    except aiohttp.ClientError as e:
        raise SourceUnavailable(provider, f"Error fetching {url}: {type(e).__name__}: {e}") from e


def parse_block_height(provider: str, value: Any) -> int:
    try:
        height = int(value)
    except (TypeError, ValueError):
        raise InvalidData(provider, f"Invalid block height: {value!r}") from None
    if height < 0:
        raise InvalidData(provider, f"Invalid block height: {value!r}")
    return height


def parse_block_hash(provider: str, value: Any) -> str:
    # a bitcoin block hash is 32 bytes, 64 hex characters
    if not isinstance(value, str) or BLOCK_HASH_PATTERN.match(value) is None:
        raise InvalidData(provider, f"Invalid block hash: {value!r}")
    return value


@dataclass
class RestApiClient:
    """
    Talks to an Esplora compatible REST API, retrying once against `fallback_url`
    when the primary base URL is unavailable.
    """

    session: aiohttp.ClientSession
    provider: str
    url: str
    timeout: float
    fallback_url: Optional[str] = None

    async def get(self, path: str, response_type: ResponseType) -> Any:
        try:
            return await fetch_data(self.session, self.provider, self.url + path, response_type, self.timeout)
        except SourceUnavailable as e:
            if self.fallback_url is None:
                raise
            log.warning(f"{e}, retrying against fallback {self.fallback_url}")
            return await fetch_data(self.session, self.provider, self.fallback_url + path, response_type, self.timeout)

    async def get_tip_height(self) -> int:
        return parse_block_height(self.provider, await self.get("/api/blocks/tip/height", "text"))

    async def get_tip_hash(self) -> str:
        return parse_block_hash(self.provider, await self.get("/api/blocks/tip/hash", "text"))
