"""
Topsoil moisture estimate from an Open-Meteo water balance.

No soil sensor is involved: the current value is derived from the last
`moisture_past_days` of precipitation minus reference evapotranspiration,
and compared with a climate-based historical estimate to get a risk level.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .cache import TTLCache
from .config import Settings
from .errors import MoistureServiceError, ServiceError
from .fetch import get_json
from .normalize import parse_daily_series
from .recommendations import advise_crop_moisture
from .schemas import CropMoistureAdvice, MoistureProjection, MoistureReading, RiskLevel
from .weather import geocode

logger = logging.getLogger(__name__)

DAILY_KEYS = [
    "precipitation_sum",
    "precipitation_probability_max",
    "temperature_2m_max",
    "temperature_2m_min",
    "et0_fao_evapotranspiration",
]

OPTIMAL_RANGE = (40, 70)

# cache key: (round(lat, 3), round(lon, 3))
_moisture_cache = TTLCache("moisture")


def _mean_temperature(row: Dict[str, Any]) -> Optional[float]:
    high, low = row.get("temperature_2m_max"), row.get("temperature_2m_min")
    if high is None or low is None:
        return None
    return (high + low) / 2


def _evapotranspiration(row: Dict[str, Any]) -> float:
    et0 = row.get("et0_fao_evapotranspiration")
    if et0 is not None:
        return et0
    # temperature-only estimate when ET0 is missing
    temp = _mean_temperature(row)
    return 0.0023 * max(0.0, temp) * 1.5 if temp is not None else 0.0


def estimate_moisture(balance: float) -> float:
    """Topsoil moisture (%) for a precipitation-minus-ET balance in mm."""
    if balance > 50:
        return min(95.0, 70 + balance / 10)
    if balance > 20:
        return 60 + balance / 5
    if balance > -20:
        return 50 + balance / 4
    if balance > -50:
        return max(20.0, 40 + balance / 3)
    return max(5.0, 20 + balance / 5)


def estimate_historical_moisture(latitude: float, rows: List[Dict[str, Any]]) -> float:
    """Climate baseline from latitude, mean precipitation and mean temperature, clamped to 30..70."""
    precip = [r["precipitation_sum"] for r in rows if r.get("precipitation_sum") is not None]
    temps = [t for t in (_mean_temperature(r) for r in rows) if t is not None]
    avg_precip = sum(precip) / len(precip) if precip else 0.0
    avg_temp = sum(temps) / len(temps) if temps else 0.0

    base = 50.0
    base += (1 - abs(latitude) / 90) * 10
    # ~3 mm/day is treated as normal
    base += (avg_precip / 3 - 1) * 15
    base -= max(0.0, avg_temp - 15) / 10 * 5
    return min(70.0, max(30.0, base))


def classify_risk(difference: float) -> RiskLevel:
    if difference < -20:
        return "high-dry"
    if difference < -10:
        return "moderate-dry"
    if difference > 20:
        return "high-wet"
    if difference > 10:
        return "moderate-wet"
    return "normal"


def project_moisture(current: float, rows: List[Dict[str, Any]]) -> List[MoistureProjection]:
    """Carry the current estimate forward through forecast days with the same water balance."""
    projection = []
    moisture = current
    for row in rows:
        balance = (row.get("precipitation_sum") or 0.0) - _evapotranspiration(row)
        moisture = min(100.0, max(0.0, moisture + balance / 4))
        projection.append(
            MoistureProjection(
                date=row["date"],
                moisture=round(moisture, 1),
                optimal=OPTIMAL_RANGE[0] <= moisture <= OPTIMAL_RANGE[1],
                precip_probability=row.get("precipitation_probability_max") or 0.0,
                temperature=_mean_temperature(row),
            )
        )
    return projection


def build_reading(latitude: float, daily: Dict[str, list], today: date) -> MoistureReading:
    rows = parse_daily_series(daily, DAILY_KEYS)
    past = [r for r in rows if r["date"] < today]
    future = [r for r in rows if r["date"] >= today]
    if not past:
        raise MoistureServiceError("No past precipitation data returned", "DATA_PROCESSING_ERROR")

    precipitation = sum(r.get("precipitation_sum") or 0.0 for r in past)
    evapotranspiration = sum(_evapotranspiration(r) for r in past)
    balance = precipitation - evapotranspiration
    current = estimate_moisture(balance)
    historical = estimate_historical_moisture(latitude, past)
    difference = current - historical

    return MoistureReading(
        current_moisture=round(current, 1),
        historical_average=round(historical, 1),
        moisture_difference=round(difference, 1),
        precipitation_last_30_days=round(precipitation, 1),
        evapotranspiration_last_30_days=round(evapotranspiration, 1),
        moisture_balance=round(balance, 1),
        risk_level=classify_risk(difference),
        last_updated=datetime.now(timezone.utc),
        projection=project_moisture(current, future),
    )


def make_placeholder() -> MoistureReading:
    return MoistureReading(source="placeholder", last_updated=datetime.now(timezone.utc))


def _check_coordinates(lat: float, lon: float) -> None:
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise MoistureServiceError(f"Invalid coordinates ({lat}, {lon})", "INVALID_COORDINATES")


async def get_moisture(
    client: httpx.AsyncClient,
    settings: Settings,
    city: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    today: Optional[date] = None,
) -> MoistureReading:
    if lat is not None and lon is not None:
        _check_coordinates(lat, lon)
    elif city:
        location = await geocode(client, city, settings)
        lat, lon = location.latitude, location.longitude
    else:
        raise MoistureServiceError("City or coordinates are required", "PARAMS_MISSING")

    key = (round(lat, 3), round(lon, 3))
    cached = _moisture_cache.get(key)
    if cached:
        return cached

    params = {
        "latitude": lat,
        "longitude": lon,
        "daily": ",".join(DAILY_KEYS),
        "timezone": "auto",
        "forecast_days": settings.moisture_forecast_days,
        "past_days": settings.moisture_past_days,
    }
    data = await get_json(
        client,
        settings.open_meteo_forecast_url,
        params,
        domain="moisture",
        error_cls=MoistureServiceError,
        what="soil moisture inputs",
        city=city,
    )
    reading = build_reading(lat, data.get("daily") or {}, today or date.today())
    _moisture_cache.put(key, reading, settings.moisture_ttl_seconds)
    return reading


async def get_moisture_or_placeholder(
    client: httpx.AsyncClient,
    settings: Settings,
    city: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    today: Optional[date] = None,
) -> MoistureReading:
    """Like `get_moisture`, but upstream failures yield a placeholder; bad parameters still raise."""
    try:
        return await get_moisture(client, settings, city=city, lat=lat, lon=lon, today=today)
    except ServiceError as exc:
        if exc.status_code != 503:
            raise
        logger.warning("Using placeholder moisture for %s: %s", city or (lat, lon), exc.message)
        return make_placeholder()


async def get_crop_recommendations(
    client: httpx.AsyncClient,
    settings: Settings,
    city: str,
    crop: Optional[str] = None,
) -> CropMoistureAdvice:
    reading = await get_moisture(client, settings, city=city)
    return advise_crop_moisture(reading, crop or settings.default_crop)


def clear_caches() -> None:
    _moisture_cache.clear()
