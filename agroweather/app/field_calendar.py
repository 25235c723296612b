from datetime import date, timedelta
from typing import Any, List, Optional

from .crops import normalize_crop
from .normalize import coerce, unwrap
from .schemas import (
    CalendarOperation,
    ForecastDay,
    MoistureReading,
    VegetationData,
    VegetationIndices,
    WeatherSnapshot,
)

WINDOW_DAYS = 7
PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

# Seasonal operations: crop -> (months, day offset, operation fields).
SEASONAL = {
    "wheat": (
        range(3, 6),
        4,
        {
            "id": "wheat-spring",
            "name": "Spring wheat feeding",
            "type": "fertilization",
            "priority": "medium",
            "recommendation": "Nitrogen fertilizer at the tillering stage",
        },
    ),
    "corn": (
        range(4, 6),
        3,
        {
            "id": "corn-planting",
            "name": "Corn sowing",
            "type": "planting",
            "priority": "high",
            "recommendation": "Optimal sowing time at soil temperature above 10°C",
        },
    ),
    "sunflower": (
        range(4, 6),
        5,
        {
            "id": "sunflower-planting",
            "name": "Sunflower sowing",
            "type": "planting",
            "priority": "medium",
            "recommendation": "Sow once the soil warms up to 8-10°C",
        },
    ),
    "default": (
        range(3, 6),
        2,
        {
            "id": "general-spring",
            "name": "Spring crop inspection",
            "type": "inspection",
            "priority": "low",
            "recommendation": "General inspection of plants and work planning",
        },
    ),
}


def _op(week: List[date], offset: int, source: str, status: str, **fields) -> CalendarOperation:
    return CalendarOperation(date=week[offset], source=source, status=status, **fields)


def _moisture_ops(reading: Optional[MoistureReading], week: List[date]) -> List[CalendarOperation]:
    if reading is None or reading.current_moisture is None:
        return []
    value = reading.current_moisture
    shown = round(value)
    if value < 25:
        return [
            _op(
                week, 0, "moisture_analysis", "urgent",
                id="irrigation-urgent", name="Urgent irrigation", type="irrigation", priority="high",
                recommendation=f"Critically low moisture {shown}%. Irrigate 20-25 l/m²",
            )
        ]
    if value < 40:
        return [
            _op(
                week, 1, "moisture_analysis", "recommended",
                id="irrigation-planned", name="Planned irrigation", type="irrigation",
                priority="medium",
                recommendation=f"Low moisture {shown}%. Irrigate 12-15 l/m²",
            )
        ]
    if value > 75:
        return [
            _op(
                week, 0, "moisture_analysis", "not-needed",
                id="irrigation-skip", name="Pause irrigation", type="irrigation", priority="low",
                recommendation=f"High moisture {shown}%. No irrigation needed for 5-7 days",
            )
        ]
    return []


def _vegetation_ops(indices: Optional[VegetationIndices], week: List[date]) -> List[CalendarOperation]:
    if indices is None:
        return []
    ops = []
    if indices.ndvi is not None and indices.ndvi < 0.3:
        ops.append(
            _op(
                week, 2, "vegetation_analysis", "urgent",
                id="fertilization", name="Plant feeding", type="fertilization", priority="high",
                recommendation=(
                    f"Low NDVI {round(indices.ndvi * 100)}%. Nitrogen fertilizer 30-40 kg/ha"
                ),
            )
        )
    if indices.evi is not None and indices.evi < 0.2:
        ops.append(
            _op(
                week, 3, "vegetation_analysis", "recommended",
                id="leaf-feeding", name="Foliar feeding", type="fertilization", priority="medium",
                recommendation=f"Weak EVI {round(indices.evi * 100)}%. Micronutrients",
            )
        )
    return ops


def _weather_ops(weather: Optional[WeatherSnapshot], week: List[date]) -> List[CalendarOperation]:
    if weather is None:
        return []
    ops = []
    temp = weather.temperature
    if temp is not None and temp > 30:
        ops.append(
            _op(
                week, 0, "weather_analysis", "urgent",
                id="heat-protection", name="Heat protection", type="protection", priority="high",
                recommendation=f"Temperature {round(temp)}°C. Irrigate before 8:00",
            )
        )
    if temp is not None and temp < 0:
        ops.append(
            _op(
                week, 0, "weather_analysis", "urgent",
                id="frost-protection", name="Frost protection", type="protection", priority="high",
                recommendation=f"Frost {round(temp)}°C. Use anti-frost treatments",
            )
        )
    if weather.humidity is not None and weather.humidity > 85:
        ops.append(
            _op(
                week, 1, "weather_analysis", "recommended",
                id="disease-prevention", name="Preventive spraying", type="protection",
                priority="medium",
                recommendation=f"Humidity {round(weather.humidity)}%. Risk of fungal diseases",
            )
        )
    if weather.wind_speed is not None and weather.wind_speed > 15:
        ops.append(
            _op(
                week, 0, "weather_analysis", "warning",
                id="wind-warning", name="Stop field work", type="restriction", priority="high",
                recommendation=f"Strong wind {round(weather.wind_speed)} km/h. Dangerous",
            )
        )
    return ops


def _rain_ops(forecast: List[ForecastDay], week: List[date]) -> List[CalendarOperation]:
    ops = []
    for day in forecast:
        offset = (day.date - week[0]).days
        if not 0 <= offset < WINDOW_DAYS:
            continue
        if day.precip_probability > 70:
            ops.append(
                _op(
                    week, offset, "weather_forecast", "info",
                    id=f"rain-{offset}", name="Rainy day", type="weather", priority="medium",
                    recommendation=(
                        f"Chance of rain {round(day.precip_probability)}%. Plan indoor work"
                    ),
                )
            )
    return ops


def seasonal_operations(crop: str, today: date) -> List[CalendarOperation]:
    months, offset, fields = SEASONAL.get(crop, SEASONAL["default"])
    if today.month not in months:
        return []
    week = [today + timedelta(days=i) for i in range(WINDOW_DAYS)]
    return [_op(week, offset, "seasonal_calendar", "seasonal", **fields)]


def build_calendar(
    weather: Any = None,
    moisture: Any = None,
    vegetation: Any = None,
    forecast: Any = None,
    crop: Optional[str] = None,
    today: Optional[date] = None,
) -> List[CalendarOperation]:
    """
    Assign recommended operations to days in `today..today+6`.
    Sorted by priority (high first) then date; ties keep rule order.
    """
    today = today or date.today()
    week = [today + timedelta(days=i) for i in range(WINDOW_DAYS)]

    vegetation = unwrap(vegetation)
    if isinstance(vegetation, VegetationData):
        vegetation = vegetation.indices
    elif isinstance(vegetation, dict) and "indices" in vegetation:
        vegetation = vegetation["indices"]
    days = [d for d in (coerce(ForecastDay, d) for d in (forecast or [])) if d is not None]

    operations: List[CalendarOperation] = []
    operations.extend(_moisture_ops(coerce(MoistureReading, moisture), week))
    operations.extend(_vegetation_ops(coerce(VegetationIndices, vegetation), week))
    operations.extend(_weather_ops(coerce(WeatherSnapshot, weather), week))
    operations.extend(_rain_ops(days, week))
    operations.extend(seasonal_operations(normalize_crop(crop), today))

    return sorted(operations, key=lambda op: (PRIORITY_RANK[op.priority], op.date))
