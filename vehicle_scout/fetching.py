"""
Page fetch capability.

The engine only depends on the FetchCapability protocol: given a target URL
and a capability map (JS rendering, proxy region, resource blocking), return
the page body. ProviderFetcher implements it on top of a rendering-proxy HTTP
API with aiohttp.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import aiohttp

from vehicle_scout.config import FetchConfig
from vehicle_scout.error_handling import BlockedPageError, FetchError

logger = logging.getLogger(__name__)


MIN_BODY_LENGTH = 100
USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'


@dataclass
class FetchResponse:
    """Body of a fetched page."""
    url: str
    status: int
    text: str

    def json(self) -> Any:
        return json.loads(self.text)


class FetchCapability(Protocol):
    async def fetch(self, url: str, params: Optional[Dict[str, str]] = None) -> FetchResponse:
        ...


def mask_api_key(url: str) -> str:
    return re.sub(r'apikey=[^&]+', 'apikey=***', url)


class ProviderFetcher:
    """
    Fetches pages through a rendering-proxy API.

    The provider receives the target URL plus rendering parameters and
    returns the rendered HTML (or auto-parsed JSON when autoparse=true).
    """

    def __init__(self, config: FetchConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session

    def build_params(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Merge default rendering parameters with per-call overrides."""
        query = {
            'apikey': self.config.api_key or '',
            'url': url,
            'js_render': 'true',
            'premium_proxy': 'true',
            'wait': str(self.config.wait_ms),
            'proxy_country': self.config.proxy_country,
            'block_resources': self.config.block_resources,
        }
        query.update(params or {})
        return query

    async def fetch(self, url: str, params: Optional[Dict[str, str]] = None) -> FetchResponse:
        """
        Fetch one page.

        Args:
            url: Absolute target URL
            params: Capability overrides (js_render, wait, autoparse, ...)

        Returns:
            FetchResponse with the page body

        Raises:
            FetchError: Transport failure or non-2xx provider status
            BlockedPageError: Body too short to be a real page
        """
        if not self.config.api_key:
            raise FetchError("fetch provider API key is not configured")

        query = self.build_params(url, params)
        autoparse = query.get('autoparse') == 'true'

        if self._session is not None:
            status, text, final_url = await self._get(self._session, query)
        else:
            async with aiohttp.ClientSession() as session:
                status, text, final_url = await self._get(session, query)

        logger.debug(f"Fetched {mask_api_key(final_url)} -> {status} ({len(text)} chars)")

        if status >= 400:
            raise FetchError(f"HTTP {status}: {text[:200]}", status=status)
        if not autoparse and len(text) < MIN_BODY_LENGTH:
            raise BlockedPageError(f"Body too short ({len(text)} chars), probably blocked", status=status)

        return FetchResponse(url=url, status=status, text=text)

    async def _get(self, session: aiohttp.ClientSession, query: Dict[str, str]):
        try:
            async with session.get(
                self.config.api_url,
                params=query,
                headers={'User-Agent': USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_s),
            ) as resp:
                text = await resp.text()
                return resp.status, text, str(resp.url)
        except asyncio.TimeoutError as e:
            raise FetchError(f"fetch provider timed out after {self.config.timeout_s}s") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"fetch provider unreachable: {e}") from e
