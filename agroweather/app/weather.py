import logging
from typing import List, Optional

import httpx

from .cache import TTLCache
from .config import Settings
from .errors import WeatherServiceError
from .fetch import get_json
from .normalize import (
    parse_air_quality,
    parse_current_weather,
    parse_forecast,
    parse_geocoding,
    parse_hourly,
)
from .schemas import AirQuality, ForecastDay, GeoLocation, HourlyForecast, WeatherSnapshot

logger = logging.getLogger(__name__)

AIR_QUALITY_FIELDS = [
    "european_aqi",
    "pm10",
    "pm2_5",
    "carbon_monoxide",
    "nitrogen_dioxide",
    "sulphur_dioxide",
    "ozone",
]

# cache keys: ("geo", city) / (city, days) / ("aq", lat, lon)
_geo_cache = TTLCache("geocoding")
_weather_cache = TTLCache("weather")
_air_cache = TTLCache("air_quality")


def _require_city(city: Optional[str]) -> str:
    if not city or not city.strip():
        raise WeatherServiceError("City name not provided", "CITY_NOT_PROVIDED")
    return city.strip()


async def geocode(client: httpx.AsyncClient, city: str, settings: Settings) -> GeoLocation:
    city = _require_city(city)
    key = ("geo", city.lower())
    cached = _geo_cache.get(key)
    if cached:
        return cached

    data = await get_json(
        client,
        settings.geocoding_url,
        {"name": city, "count": 1, "language": "en", "format": "json"},
        domain="geocoding",
        error_cls=WeatherServiceError,
        what="coordinates",
        city=city,
    )
    location = parse_geocoding(data)
    if location is None:
        raise WeatherServiceError(f"City '{city}' not found", "CITY_NOT_FOUND")
    _geo_cache.put(key, location, settings.geocoding_ttl_seconds)
    return location


async def _weatherapi_forecast(
    client: httpx.AsyncClient, city: str, days: int, settings: Settings, what: str
) -> dict:
    if not settings.weather_enabled:
        raise WeatherServiceError("Weather provider key is not configured", "AUTHORIZATION_ERROR")
    city = _require_city(city)
    key = (city.lower(), days)
    cached = _weather_cache.get(key)
    if cached:
        return cached

    url = f"{settings.weatherapi_base_url.rstrip('/')}/forecast.json"
    params = {
        "key": settings.weatherapi_key,
        "q": city,
        "days": days,
        "lang": settings.weatherapi_lang,
        "aqi": "no",
        "alerts": "no",
    }
    data = await get_json(
        client, url, params, domain="weather", error_cls=WeatherServiceError, what=what, city=city
    )
    _weather_cache.put(key, data, settings.weather_ttl_seconds)
    return data


async def get_current_weather(
    client: httpx.AsyncClient, city: str, settings: Settings
) -> WeatherSnapshot:
    data = await _weatherapi_forecast(client, city, 1, settings, "current weather")
    return parse_current_weather(data)


async def get_forecast(
    client: httpx.AsyncClient, city: str, settings: Settings, days: Optional[int] = None
) -> List[ForecastDay]:
    days = days or settings.forecast_days
    data = await _weatherapi_forecast(client, city, days, settings, "forecast")
    return parse_forecast(data)


async def get_hourly_forecast(
    client: httpx.AsyncClient, city: str, settings: Settings
) -> List[HourlyForecast]:
    # two days so late-evening requests still get a full set of hours
    data = await _weatherapi_forecast(client, city, 2, settings, "hourly forecast")
    return parse_hourly(data)


async def get_air_quality(
    client: httpx.AsyncClient,
    city: str,
    settings: Settings,
    location: Optional[GeoLocation] = None,
) -> AirQuality:
    location = location or await geocode(client, city, settings)
    key = ("aq", round(location.latitude, 3), round(location.longitude, 3))
    cached = _air_cache.get(key)
    if cached:
        return cached

    params = {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "current": ",".join(AIR_QUALITY_FIELDS),
        "timezone": "auto",
    }
    data = await get_json(
        client,
        settings.air_quality_url,
        params,
        domain="air_quality",
        error_cls=WeatherServiceError,
        what="air quality",
        city=city,
    )
    air = parse_air_quality(data)
    _air_cache.put(key, air, settings.air_quality_ttl_seconds)
    return air


def clear_caches() -> None:
    _geo_cache.clear()
    _weather_cache.clear()
    _air_cache.clear()
