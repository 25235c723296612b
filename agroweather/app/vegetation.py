"""
Vegetation index estimates for a point.

Indices are not read from satellite imagery. They are estimated from NASA
POWER daily agro-meteorology (root-zone soil wetness, temperature,
shortwave radiation, precipitation) as a growth-conditions proxy:

    ndvi = 0.05 + 0.85 * (0.45 * water + 0.35 * warmth + 0.20 * light)

EVI, SAVI, LAI and NDWI are derived from NDVI and the water factor with
the usual empirical relations, so every index moves consistently.
"""
import logging
import math
from datetime import date, datetime, timedelta, timezone
from itertools import groupby
from typing import Any, Dict, List, Optional

import httpx

from .cache import TTLCache
from .classifier import health_index, vegetation_health, vegetation_status
from .config import Settings
from .errors import VegetationServiceError
from .fetch import get_json
from .normalize import parse_nasa_power
from .schemas import VegetationData, VegetationHistoryPoint, VegetationIndices
from .weather import geocode

logger = logging.getLogger(__name__)

POWER_PARAMETERS = ["T2M", "PRECTOTCORR", "ALLSKY_SFC_SW_DWN", "GWETROOT"]

# NASA POWER daily data lags a few days behind real time.
POWER_LAG_DAYS = 3

# cache key: (round(lat, 3), round(lon, 3), today)
_vegetation_cache = TTLCache("vegetation")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _mean(rows: List[Dict[str, Any]], key: str) -> Optional[float]:
    values = [r[key] for r in rows if r.get(key) is not None]
    return sum(values) / len(values) if values else None


def estimate_indices(rows: List[Dict[str, Any]]) -> Optional[VegetationIndices]:
    """Indices for a period of daily POWER rows; None when temperature is missing throughout."""
    temperature = _mean(rows, "T2M")
    if temperature is None:
        return None
    wetness = _mean(rows, "GWETROOT")
    precipitation = _mean(rows, "PRECTOTCORR")
    radiation = _mean(rows, "ALLSKY_SFC_SW_DWN")

    if wetness is not None:
        water = _clamp(wetness)
    elif precipitation is not None:
        water = _clamp(precipitation / 3)
    else:
        water = 0.5
    # growth optimum around 22°C, nothing below 0°C or above 42°C
    warmth = _clamp(1 - abs(temperature - 22) / 20)
    light = _clamp(radiation / 6) if radiation is not None else 0.5

    ndvi = 0.05 + 0.85 * (0.45 * water + 0.35 * warmth + 0.20 * light)
    evi = _clamp(ndvi * 0.9 - 0.05)
    savi = _clamp(ndvi * 0.85)
    lai = min(6.0, 0.57 * math.exp(2.33 * ndvi))
    ndwi = (water - 0.5) * 0.6
    return VegetationIndices(
        ndvi=round(ndvi, 3),
        evi=round(evi, 3),
        savi=round(savi, 3),
        lai=round(lai, 2),
        ndwi=round(ndwi, 3),
    )


def monthly_history(rows: List[Dict[str, Any]]) -> List[VegetationHistoryPoint]:
    history = []
    for (year, month), group in groupby(rows, key=lambda r: (r["date"].year, r["date"].month)):
        indices = estimate_indices(list(group))
        if indices is None:
            continue
        history.append(
            VegetationHistoryPoint(
                date=date(year, month, 1), ndvi=indices.ndvi, evi=indices.evi, savi=indices.savi
            )
        )
    return history


def build_vegetation(
    rows: List[Dict[str, Any]],
    lookback_days: int,
    city: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
) -> VegetationData:
    if not rows:
        raise VegetationServiceError("No vegetation inputs returned", "DATA_PROCESSING_ERROR")
    since = rows[-1]["date"] - timedelta(days=lookback_days - 1)
    indices = estimate_indices([r for r in rows if r["date"] >= since])
    if indices is None:
        raise VegetationServiceError("Vegetation inputs are incomplete", "DATA_PROCESSING_ERROR")

    return VegetationData(
        city=city,
        latitude=lat,
        longitude=lon,
        indices=indices,
        health=vegetation_health(indices),
        health_index=health_index(indices.ndvi),
        vegetation_status=vegetation_status(indices.ndvi),
        historical=monthly_history(rows),
        last_updated=datetime.now(timezone.utc),
    )


def _check_coordinates(lat: float, lon: float) -> None:
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise VegetationServiceError(f"Invalid coordinates ({lat}, {lon})", "INVALID_COORDINATES")


async def get_vegetation(
    client: httpx.AsyncClient,
    settings: Settings,
    city: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    today: Optional[date] = None,
) -> VegetationData:
    if lat is not None and lon is not None:
        _check_coordinates(lat, lon)
    elif city:
        location = await geocode(client, city, settings)
        lat, lon = location.latitude, location.longitude
    else:
        raise VegetationServiceError("City or coordinates are required", "PARAMS_MISSING")

    today = today or date.today()
    key = (round(lat, 3), round(lon, 3), today)
    cached = _vegetation_cache.get(key)
    if cached:
        return cached

    end = today - timedelta(days=POWER_LAG_DAYS)
    start = end - timedelta(days=31 * settings.vegetation_history_months)
    params = {
        "parameters": ",".join(POWER_PARAMETERS),
        "community": "AG",
        "latitude": lat,
        "longitude": lon,
        "start": start.strftime("%Y%m%d"),
        "end": end.strftime("%Y%m%d"),
        "format": "JSON",
    }
    data = await get_json(
        client,
        settings.nasa_power_url,
        params,
        domain="vegetation",
        error_cls=VegetationServiceError,
        what="vegetation inputs",
        city=city,
    )
    rows = parse_nasa_power(data, POWER_PARAMETERS)
    vegetation = build_vegetation(rows, settings.vegetation_lookback_days, city=city, lat=lat, lon=lon)
    _vegetation_cache.put(key, vegetation, settings.vegetation_ttl_seconds)
    return vegetation


def clear_caches() -> None:
    _vegetation_cache.clear()
