from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    weatherapi_key: str | None = None
    weatherapi_base_url: str = "https://api.weatherapi.com/v1"
    weatherapi_lang: str = "en"

    geocoding_url: str = "https://geocoding-api.open-meteo.com/v1/search"
    open_meteo_forecast_url: str = "https://api.open-meteo.com/v1/forecast"
    open_meteo_archive_url: str = "https://archive-api.open-meteo.com/v1/archive"
    air_quality_url: str = "https://air-quality-api.open-meteo.com/v1/air-quality"
    nasa_power_url: str = "https://power.larc.nasa.gov/api/temporal/daily/point"

    http_timeout_seconds: float = 10.0

    geocoding_ttl_seconds: int = 24 * 60 * 60
    weather_ttl_seconds: int = 600
    air_quality_ttl_seconds: int = 1800
    moisture_ttl_seconds: int = 2 * 60 * 60
    vegetation_ttl_seconds: int = 6 * 60 * 60
    trends_ttl_seconds: int = 6 * 60 * 60

    moisture_past_days: int = 30
    moisture_forecast_days: int = 10
    vegetation_lookback_days: int = 30
    vegetation_history_months: int = 6
    forecast_days: int = 7

    default_crop: str = "wheat"
    default_temperature_unit: str = "celsius"

    api_key: str | None = None
    allowed_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    @property
    def weather_enabled(self) -> bool:
        return bool(self.weatherapi_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
