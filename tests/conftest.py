# Shared fixtures: test settings, a URL-routed fake HTTP client, and cache isolation.

import httpx
import pytest
from unittest.mock import AsyncMock

from agroweather.app import analytics, moisture, vegetation, weather
from agroweather.app.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, weatherapi_key="test-key", api_key=None)


@pytest.fixture(autouse=True)
def clear_provider_caches():
    for module in (weather, moisture, vegetation, analytics):
        module.clear_caches()
    yield
    for module in (weather, moisture, vegetation, analytics):
        module.clear_caches()


def _reply(url: str, reply) -> httpx.Response:
    if isinstance(reply, tuple):
        status, payload = reply
    else:
        status, payload = 200, reply
    return httpx.Response(status_code=status, json=payload, request=httpx.Request("GET", url))


@pytest.fixture
def provider_client():
    """
    Build a mock httpx.AsyncClient that answers by URL fragment.

    `routes` maps a URL fragment to a JSON payload, a `(status, payload)` tuple,
    or an exception to raise. Requests matching no fragment fail the test.
    """

    def build(routes: dict) -> httpx.AsyncClient:
        async def fake_get(url, params=None, **kwargs):
            for fragment, reply in routes.items():
                if fragment in url:
                    if isinstance(reply, Exception):
                        raise reply
                    return _reply(url, reply)
            raise AssertionError(f"Unexpected request to {url}")

        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = fake_get
        return client

    return build
