import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, Optional

import httpx

from .alerts import alerts_for_snapshot
from .classifier import classify_indices, classify_moisture, overall_score
from .config import Settings
from .errors import ServiceError
from .field_calendar import build_calendar
from .formatting import format_temperature, normalize_unit, unit_symbol
from .metrics import stale_refreshes
from .moisture import get_moisture
from .recommendations import (
    advise_risk_level,
    advise_weather,
    analyze_crop_health,
    recommend_irrigation,
)
from .schemas import CitySnapshot, Dashboard, MoistureSummary
from .vegetation import get_vegetation
from .weather import geocode, get_air_quality, get_current_weather, get_forecast

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Latest snapshot per city, guarded by a refresh generation.

    Every refresh takes the next generation number for its city when it starts.
    A refresh that completes after a newer one has already been stored is stale
    and is dropped, so a slow response can never overwrite fresher state. A newer
    refresh that fails without storing anything does not block older ones.
    """

    def __init__(self):
        self._generations: Dict[str, int] = {}
        self._committed: Dict[str, int] = {}
        self._snapshots: Dict[str, CitySnapshot] = {}

    @staticmethod
    def _key(city: str) -> str:
        return city.strip().lower()

    def begin(self, city: str) -> int:
        key = self._key(city)
        self._generations[key] = self._generations.get(key, 0) + 1
        return self._generations[key]

    def commit(self, snapshot: CitySnapshot) -> bool:
        key = self._key(snapshot.city)
        committed = self._committed.get(key, 0)
        if snapshot.generation < committed:
            stale_refreshes.inc()
            logger.info(
                "Discarding stale snapshot for %s (generation %d < %d)",
                snapshot.city,
                snapshot.generation,
                committed,
            )
            return False
        self._committed[key] = snapshot.generation
        self._snapshots[key] = snapshot
        return True

    def latest(self, city: str) -> Optional[CitySnapshot]:
        return self._snapshots.get(self._key(city))

    def __len__(self) -> int:
        return len(self._snapshots)


async def collect_snapshot(
    client: httpx.AsyncClient,
    settings: Settings,
    city: str,
    store: SnapshotStore,
    today: Optional[date] = None,
) -> CitySnapshot:
    """
    Fetch every domain for a city concurrently.
    Geocoding failures propagate; any other failed domain leaves its slot empty
    and is recorded in `errors`.
    """
    generation = store.begin(city)
    location = await geocode(client, city, settings)

    domains = ["weather", "forecast", "air_quality", "moisture", "vegetation"]
    results = await asyncio.gather(
        get_current_weather(client, city, settings),
        get_forecast(client, city, settings),
        get_air_quality(client, city, settings, location=location),
        get_moisture(client, settings, lat=location.latitude, lon=location.longitude, today=today),
        get_vegetation(
            client, settings, city=city, lat=location.latitude, lon=location.longitude, today=today
        ),
        return_exceptions=True,
    )

    values = {}
    errors = {}
    for domain, result in zip(domains, results):
        if isinstance(result, ServiceError):
            logger.warning("%s unavailable for %s: %s (%s)", domain, city, result.message, result.code)
            errors[domain] = result.code
            values[domain] = None
        elif isinstance(result, BaseException):
            raise result
        else:
            values[domain] = result

    snapshot = CitySnapshot(
        city=city,
        generation=generation,
        fetched_at=datetime.now(timezone.utc),
        location=location,
        weather=values["weather"],
        forecast=values["forecast"] or [],
        air_quality=values["air_quality"],
        moisture=values["moisture"],
        vegetation=values["vegetation"],
        errors=errors,
    )
    store.commit(snapshot)
    return snapshot


async def refresh(
    client: httpx.AsyncClient,
    settings: Settings,
    city: str,
    store: SnapshotStore,
    today: Optional[date] = None,
) -> CitySnapshot:
    """Collect a snapshot and return the freshest one stored for the city."""
    snapshot = await collect_snapshot(client, settings, city, store, today)
    latest = store.latest(city)
    if latest is None or latest.generation < snapshot.generation:
        return snapshot
    return latest


def build_dashboard(
    snapshot: CitySnapshot,
    crop: Optional[str] = None,
    unit: Optional[str] = None,
    today: Optional[date] = None,
    dismissed: Iterable[str] = (),
) -> Dashboard:
    """Every derived view of one snapshot; missing domains yield placeholders."""
    unit = normalize_unit(unit)
    moisture = snapshot.moisture
    vegetation = snapshot.vegetation
    weather = snapshot.weather
    temperature = weather.temperature if weather else None
    current_moisture = moisture.current_moisture if moisture else None
    crop_health = analyze_crop_health(vegetation, weather, moisture, crop)

    return Dashboard(
        snapshot=snapshot,
        unit=unit,
        unit_symbol=unit_symbol(unit),
        temperature=format_temperature(temperature, unit),
        moisture=MoistureSummary(
            classification=classify_moisture(current_moisture),
            risk=advise_risk_level(moisture),
            projection=moisture.projection if moisture else [],
        ),
        vegetation=classify_indices(vegetation.indices if vegetation else None),
        irrigation=recommend_irrigation(moisture),
        crop_health=crop_health,
        weather_advice=advise_weather(weather, snapshot.forecast, today),
        alerts=alerts_for_snapshot(snapshot, dismissed),
        calendar=build_calendar(weather, moisture, vegetation, snapshot.forecast, crop, today),
        overall_score=overall_score(
            temperature,
            current_moisture,
            vegetation.health.score if vegetation else None,
        ),
    )
