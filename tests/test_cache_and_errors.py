from datetime import datetime, timedelta, timezone

import httpx
import pytest

from agroweather.app.cache import TTLCache
from agroweather.app.errors import (
    MoistureServiceError,
    ServiceError,
    WeatherServiceError,
    from_http_error,
)
from agroweather.app.fetch import get_json


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://provider.test/data")
    response = httpx.Response(status_code=status, request=request)
    return httpx.HTTPStatusError("failed", request=request, response=response)


class TestTTLCache:
    def test_put_and_get(self):
        cache = TTLCache("test")
        cache.put("key", 42, ttl_seconds=60)
        assert cache.get("key") == 42

    def test_expired_entries_are_dropped(self):
        cache = TTLCache("test")
        cache._entries["key"] = (datetime.now(timezone.utc) - timedelta(seconds=1), 42)
        assert cache.get("key") is None
        assert "key" not in cache._entries

    def test_zero_ttl_disables_caching(self):
        cache = TTLCache("test")
        cache.put("key", 42, ttl_seconds=0)
        assert cache.get("key") is None

    def test_clear(self):
        cache = TTLCache("test")
        cache.put("key", 42, ttl_seconds=60)
        cache.clear()
        assert cache.get("key") is None


class TestServiceErrors:
    @pytest.mark.parametrize(
        "code, status",
        [
            ("CITY_NOT_PROVIDED", 400),
            ("INVALID_COORDINATES", 400),
            ("CITY_NOT_FOUND", 404),
            ("RATE_LIMIT_EXCEEDED", 429),
            ("SERVER_ERROR", 503),
            ("NO_RESPONSE", 503),
        ],
    )
    def test_api_status(self, code, status):
        assert ServiceError("boom", code).status_code == status

    def test_not_found_names_the_city(self):
        error = from_http_error(_status_error(404), WeatherServiceError, "weather", "Atlantis")
        assert isinstance(error, WeatherServiceError)
        assert error.code == "CITY_NOT_FOUND"
        assert "Atlantis" in error.message

    @pytest.mark.parametrize(
        "status, code",
        [(400, "INVALID_REQUEST"), (401, "AUTHORIZATION_ERROR"), (403, "ACCESS_DENIED"),
         (429, "RATE_LIMIT_EXCEEDED"), (500, "SERVER_ERROR"), (502, "SERVER_ERROR"), (418, "UNKNOWN_ERROR")],
    )
    def test_status_codes(self, status, code):
        assert from_http_error(_status_error(status)).code == code

    def test_transport_failure(self):
        exc = httpx.ConnectError("refused", request=httpx.Request("GET", "https://provider.test"))
        error = from_http_error(exc, MoistureServiceError, "soil moisture")
        assert isinstance(error, MoistureServiceError)
        assert error.code == "NO_RESPONSE"
        assert error.status_code == 503


class TestGetJson:
    @pytest.mark.asyncio
    async def test_object_body(self, provider_client):
        client = provider_client({"provider.test": {"value": 1}})
        assert await get_json(client, "https://provider.test/data", {}, "test") == {"value": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[], ["a"], "text", 42])
    async def test_non_object_body_is_invalid(self, provider_client, body):
        client = provider_client({"provider.test": body})
        with pytest.raises(MoistureServiceError) as exc_info:
            await get_json(client, "https://provider.test/data", {}, "test", MoistureServiceError)
        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.status_code == 503
