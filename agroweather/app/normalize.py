"""
One normalization step per external endpoint.

Provider payloads are loosely shaped; everything downstream of this module
works on the typed models from `schemas`, so missing fields are resolved
here, once, rather than with per-caller defaults.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .schemas import AirQuality, ForecastDay, GeoLocation, HourlyForecast, WeatherSnapshot

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

WEATHERAPI_TIME_FORMAT = "%Y-%m-%d %H:%M"


def unwrap(payload: Any) -> Any:
    """Return the data of a `{success, data}` envelope, or the payload itself if bare."""
    if isinstance(payload, dict) and "success" in payload and "data" in payload:
        return payload["data"] if payload.get("success") else None
    return payload


def coerce(model: Type[M], value: Any) -> Optional[M]:
    """Accept a model, a dict, a `{success, data}` envelope or None; invalid payloads count as missing."""
    value = unwrap(value)
    if value is None or isinstance(value, model):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if not isinstance(value, dict):
        logger.warning("Expected %s payload, got %s", model.__name__, type(value).__name__)
        return None
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        logger.warning("Discarding invalid %s payload: %s", model.__name__, exc)
        return None


def _float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _weatherapi_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), WEATHERAPI_TIME_FORMAT)
    except ValueError:
        return None


def column_at(columns: Dict[str, list], key: str, index: int):
    """Value at `index` of an Open-Meteo column, or None if the column is short or missing."""
    col = columns.get(key)
    if col is None or index >= len(col):
        return None
    return col[index]


def parse_geocoding(data: dict) -> Optional[GeoLocation]:
    results = data.get("results")
    if not results:
        return None
    r = results[0]
    return GeoLocation(
        name=r["name"],
        latitude=r["latitude"],
        longitude=r["longitude"],
        timezone=r.get("timezone") or "auto",
        country=r.get("country"),
    )


def parse_current_weather(data: dict) -> WeatherSnapshot:
    """Build a snapshot from a WeatherAPI `forecast.json` response (current + first day)."""
    current = data.get("current") or {}
    location = data.get("location") or {}
    days = (data.get("forecast") or {}).get("forecastday") or []
    today = days[0] if days else {}
    day = today.get("day") or {}
    astro = today.get("astro") or {}

    epoch = current.get("last_updated_epoch")
    observed_at = (
        datetime.fromtimestamp(epoch, tz=timezone.utc) if epoch else datetime.now(timezone.utc)
    )
    return WeatherSnapshot(
        city=location.get("name") or "",
        country=location.get("country"),
        temperature=_float(current.get("temp_c")),
        humidity=_float(current.get("humidity")),
        wind_speed=_float(current.get("wind_kph")),
        description=(current.get("condition") or {}).get("text"),
        sunrise=astro.get("sunrise"),
        sunset=astro.get("sunset"),
        max_temperature=_float(day.get("maxtemp_c")),
        min_temperature=_float(day.get("mintemp_c")),
        observed_at=observed_at,
    )


def parse_forecast(data: dict) -> List[ForecastDay]:
    result = []
    for entry in (data.get("forecast") or {}).get("forecastday") or []:
        raw_date = entry.get("date")
        if not raw_date:
            continue
        day = entry.get("day") or {}
        condition = day.get("condition") or {}
        result.append(
            ForecastDay(
                date=date.fromisoformat(raw_date),
                temperature=_float(day.get("avgtemp_c")),
                min_temperature=_float(day.get("mintemp_c")),
                max_temperature=_float(day.get("maxtemp_c")),
                humidity=_float(day.get("avghumidity")),
                wind_speed=_float(day.get("maxwind_kph")),
                description=condition.get("text"),
                condition_code=condition.get("code"),
                precip_probability=_float(day.get("daily_chance_of_rain")) or 0.0,
            )
        )
    return result


def parse_hourly(data: dict, limit: int = 8) -> List[HourlyForecast]:
    """Upcoming 3-hour-aligned hours, relative to the location's local time."""
    now = _weatherapi_time((data.get("location") or {}).get("localtime"))
    hours = []
    for entry in (data.get("forecast") or {}).get("forecastday") or []:
        for hour in entry.get("hour") or []:
            at = _weatherapi_time(hour.get("time"))
            if at is None or at.hour % 3 != 0:
                continue
            if now is not None and at < now:
                continue
            condition = hour.get("condition") or {}
            hours.append(
                HourlyForecast(
                    time=at,
                    temperature=_float(hour.get("temp_c")),
                    description=condition.get("text"),
                    wind_speed=_float(hour.get("wind_kph")),
                    humidity=_float(hour.get("humidity")),
                    icon=condition.get("icon"),
                )
            )
    return hours[:limit]


def parse_air_quality(data: dict) -> AirQuality:
    current = data.get("current") or {}
    observed_at = None
    if current.get("time"):
        try:
            observed_at = datetime.fromisoformat(current["time"])
        except ValueError:
            observed_at = None
    return AirQuality(
        index=_float(current.get("european_aqi")),
        pm2_5=_float(current.get("pm2_5")),
        pm10=_float(current.get("pm10")),
        carbon_monoxide=_float(current.get("carbon_monoxide")),
        nitrogen_dioxide=_float(current.get("nitrogen_dioxide")),
        sulphur_dioxide=_float(current.get("sulphur_dioxide")),
        ozone=_float(current.get("ozone")),
        observed_at=observed_at,
    )


def parse_daily_series(raw: Dict[str, list], keys: List[str]) -> List[Dict[str, Any]]:
    """Zip Open-Meteo column-oriented daily data into one dict per day."""
    rows = []
    for i, d in enumerate(raw.get("time") or []):
        row: Dict[str, Any] = {"date": date.fromisoformat(d)}
        for key in keys:
            row[key] = _float(column_at(raw, key, i))
        rows.append(row)
    return rows


def parse_nasa_power(data: dict, keys: List[str], fill_value: float = -999.0) -> List[Dict[str, Any]]:
    """Flatten NASA POWER `{parameter: {YYYYMMDD: value}}` into sorted per-day dicts."""
    parameters = ((data.get("properties") or {}).get("parameter")) or {}
    dates = sorted({d for key in keys for d in (parameters.get(key) or {})})
    rows = []
    for d in dates:
        try:
            day = datetime.strptime(d, "%Y%m%d").date()
        except ValueError:
            continue
        row: Dict[str, Any] = {"date": day}
        for key in keys:
            value = _float((parameters.get(key) or {}).get(d))
            row[key] = None if value is None or value == fill_value else value
        rows.append(row)
    return rows
