"""
Tests for the rendering-proxy fetch capability.
"""

import asyncio

import aiohttp
import pytest

from vehicle_scout.config import FetchConfig
from vehicle_scout.error_handling import BlockedPageError, FetchError
from vehicle_scout.fetching import FetchResponse, ProviderFetcher, mask_api_key


PAGE = "<html><body>" + "<div>annonce</div>" * 20 + "</body></html>"


class FakeResponse:
    def __init__(self, status, text, url):
        self.status = status
        self._text = text
        self.url = url

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, status=200, text=PAGE, error=None):
        self.status = status
        self.text = text
        self.error = error
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append((url, params))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status, self.text, f"{url}?apikey={params['apikey']}")


CONFIG = FetchConfig(api_key="secret-key")


@pytest.mark.asyncio
async def test_fetch_returns_page_body():
    session = FakeSession()
    fetcher = ProviderFetcher(CONFIG, session=session)

    response = await fetcher.fetch("https://www.leboncoin.fr/recherche?text=308")

    assert response == FetchResponse(url="https://www.leboncoin.fr/recherche?text=308", status=200, text=PAGE)
    api_url, params = session.requests[0]
    assert api_url == CONFIG.api_url
    assert params['url'] == "https://www.leboncoin.fr/recherche?text=308"
    assert params['js_render'] == 'true'
    assert params['proxy_country'] == 'fr'


@pytest.mark.asyncio
async def test_capability_overrides_are_forwarded():
    session = FakeSession(text='{"listings": []}')
    fetcher = ProviderFetcher(CONFIG, session=session)

    response = await fetcher.fetch("https://www.lacentrale.fr/listing", {'autoparse': 'true', 'wait': '3000'})

    assert response.json() == {"listings": []}
    _, params = session.requests[0]
    assert params['autoparse'] == 'true'
    assert params['wait'] == '3000'


@pytest.mark.asyncio
async def test_error_status_raises_fetch_error():
    fetcher = ProviderFetcher(CONFIG, session=FakeSession(status=429, text="Too many requests"))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch("https://www.leboncoin.fr/recherche")

    assert exc_info.value.status == 429
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_short_body_is_treated_as_blocked():
    fetcher = ProviderFetcher(CONFIG, session=FakeSession(text="<html></html>"))

    with pytest.raises(BlockedPageError):
        await fetcher.fetch("https://www.leboncoin.fr/recherche")


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
async def test_transport_errors_become_fetch_errors(error):
    fetcher = ProviderFetcher(CONFIG, session=FakeSession(error=error))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch("https://www.leboncoin.fr/recherche")

    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_missing_api_key():
    session = FakeSession()
    fetcher = ProviderFetcher(FetchConfig(api_key=None), session=session)

    with pytest.raises(FetchError):
        await fetcher.fetch("https://www.leboncoin.fr/recherche")
    assert session.requests == []


def test_api_key_is_masked_in_logs():
    assert mask_api_key("https://api.zenrows.com/v1?apikey=abc123&url=x") == \
        "https://api.zenrows.com/v1?apikey=***&url=x"
