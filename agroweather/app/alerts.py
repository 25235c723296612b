import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .metrics import alerts_emitted
from .normalize import coerce
from .schemas import AirQuality, Alert, CitySnapshot, MoistureReading, VegetationData, WeatherSnapshot

logger = logging.getLogger(__name__)

# Rule definitions over the latest snapshot, evaluated in order.
# field is a dotted path inside the source DTO.
DEFAULT_RULES = [
    {
        "name": "temp_high",
        "source": "weather",
        "field": "temperature",
        "op": ">",
        "threshold": 30.0,
        "type": "warning",
        "priority": "high",
        "title": "High temperature",
        "message": "Temperature {value:.0f}°C. Risk of heat stress for crops.",
    },
    {
        "name": "frost",
        "source": "weather",
        "field": "temperature",
        "op": "<",
        "threshold": 0.0,
        "type": "error",
        "priority": "high",
        "title": "Frost",
        "message": "Temperature {value:.0f}°C. Protect crops from frost damage.",
    },
    {
        "name": "moisture_low",
        "source": "moisture",
        "field": "current_moisture",
        "op": "<",
        "threshold": 30.0,
        "type": "warning",
        "priority": "high",
        "title": "Low soil moisture",
        "message": "Soil moisture {value:.0f}%. Irrigation is recommended.",
    },
    {
        "name": "vegetation_poor",
        "source": "vegetation",
        "field": "health.status",
        "op": "==",
        "threshold": "poor",
        "type": "warning",
        "priority": "medium",
        "title": "Poor vegetation health",
        "message": "Vegetation indices show stressed or sparse vegetation.",
    },
    {
        "name": "air_quality_poor",
        "source": "air_quality",
        "field": "index",
        "op": ">",
        "threshold": 80.0,
        "type": "info",
        "priority": "medium",
        "title": "Poor air quality",
        "message": "Air quality index {value:.0f}. Limit outdoor work.",
    },
]

SOURCES = {
    "weather": (WeatherSnapshot, "observed_at"),
    "moisture": (MoistureReading, "last_updated"),
    "vegetation": (VegetationData, "last_updated"),
    "air_quality": (AirQuality, "observed_at"),
}

PRIORITIES = ("high", "medium", "low")


def _compare(value, op: str, threshold) -> bool:
    if value is None:
        return False
    if op == "==":
        return value == threshold
    if op == ">":
        return value > threshold
    if op == "<":
        return value < threshold
    if op == ">=":
        return value >= threshold
    if op == "<=":
        return value <= threshold
    return False


def _lookup(obj, path: str):
    for part in path.split("."):
        if obj is None:
            return None
        obj = getattr(obj, part, None)
    return obj


def aggregate_alerts(
    weather: Any = None,
    moisture: Any = None,
    vegetation: Any = None,
    air_quality: Any = None,
    fetched_at: Optional[datetime] = None,
    dismissed: Iterable[str] = (),
    rules: Iterable[dict] = DEFAULT_RULES,
) -> List[Alert]:
    """
    Evaluate rules against the latest per-domain data.
    Output order follows rule order; ids and timestamps come from the inputs,
    so identical inputs give identical alerts.
    """
    raw = {
        "weather": weather,
        "moisture": moisture,
        "vegetation": vegetation,
        "air_quality": air_quality,
    }
    parts: Dict[str, Any] = {name: coerce(SOURCES[name][0], value) for name, value in raw.items()}
    skip = set(dismissed)

    alerts: List[Alert] = []
    for rule in rules:
        source = parts.get(rule["source"])
        if source is None or rule["name"] in skip:
            continue
        value = _lookup(source, rule["field"])
        if not _compare(value, rule["op"], rule["threshold"]):
            continue
        timestamp = getattr(source, SOURCES[rule["source"]][1], None) or fetched_at
        alerts.append(
            Alert(
                id=rule["name"],
                type=rule["type"],
                title=rule["title"],
                message=rule["message"].format(value=value),
                timestamp=timestamp,
                priority=rule["priority"],
            )
        )
    return alerts


def alerts_for_snapshot(snapshot: CitySnapshot, dismissed: Iterable[str] = ()) -> List[Alert]:
    alerts = aggregate_alerts(
        weather=snapshot.weather,
        moisture=snapshot.moisture,
        vegetation=snapshot.vegetation,
        air_quality=snapshot.air_quality,
        fetched_at=snapshot.fetched_at,
        dismissed=dismissed,
    )
    for alert in alerts:
        alerts_emitted.labels(alert.priority).inc()
    if alerts:
        logger.info("%d alert(s) for %s", len(alerts), snapshot.city)
    return alerts


def filter_alerts(alerts: List[Alert], priority: Optional[str] = None) -> List[Alert]:
    if not priority or priority == "all":
        return list(alerts)
    return [a for a in alerts if a.priority == priority]


def count_by_priority(alerts: Iterable[Alert]) -> Dict[str, int]:
    counts = {p: 0 for p in PRIORITIES}
    for alert in alerts:
        counts[alert.priority] += 1
    return counts
