import asyncio
import logging
import math
from datetime import date, timedelta
from itertools import groupby
from typing import Dict, List, Optional

import httpx

from .cache import TTLCache
from .config import Settings
from .crops import BASE_YIELDS, normalize_crop
from .errors import AnalyticsServiceError, ServiceError
from .fetch import get_json
from .moisture import get_moisture
from .normalize import coerce, parse_daily_series
from .schemas import (
    Anomaly,
    ComprehensiveAnalytics,
    MoistureReading,
    ShortTermForecast,
    Trend,
    TrendPoint,
    TrendReport,
    YieldFactor,
    YieldPrediction,
    YieldRecommendation,
)
from .weather import geocode

logger = logging.getLogger(__name__)

ARCHIVE_KEYS = [
    "temperature_2m_mean",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "relative_humidity_2m_mean",
    "wind_speed_10m_max",
]

# time range -> (days back, bucket)
TIME_RANGES = {
    "week": (7, "day"),
    "month": (30, "day"),
    "season": (91, "week"),
    "year": (365, "month"),
}

# The archive lags real time by a couple of days.
ARCHIVE_LAG_DAYS = 2

TREND_THRESHOLDS = {"temperature": 0.1, "precipitation": 0.05, "humidity": 0.5}

STABLE = Trend(direction="stable", magnitude="minimal", description="Stable")

CROP_YIELD_ADVICE = {
    "wheat": [("medium", "Disease monitoring", "Wheat is prone to fungal diseases in wet conditions")],
    "corn": [("medium", "Pest control", "Corn needs protection against the corn rootworm")],
    "sunflower": [("low", "Sun exposure", "Ensure optimal lighting of the crops")],
}

# (op, threshold, factor name, multiplier, impact %, description); last row is the fallback.
TEMPERATURE_FACTORS = [
    ("<", 15, "low_temperature", 0.85, -15, "Low temperature reduces yield"),
    (">", 25, "high_temperature", 0.9, -10, "High temperature may reduce yield"),
    (None, None, "optimal_temperature", 1.05, 5, "Optimal temperature for growth"),
]
RAIN_FACTORS = [
    ("<", 50, "drought", 0.7, -30, "Insufficient precipitation"),
    (">", 200, "excess_rain", 0.85, -15, "Excessive precipitation"),
    (None, None, "adequate_rain", 1.1, 10, "Adequate precipitation"),
]
SOIL_FACTORS = [
    ("<", 30, "low_soil_moisture", 0.75, -25, "Low soil moisture"),
    (">", 80, "high_soil_moisture", 0.9, -10, "Excess soil moisture"),
    (None, None, "optimal_soil_moisture", 1.08, 8, "Optimal soil moisture"),
]

# cache key: (round(lat, 3), round(lon, 3), time_range, end)
_trends_cache = TTLCache("trends")


def to_points(daily: Dict[str, list]) -> List[TrendPoint]:
    points = []
    for row in parse_daily_series(daily, ARCHIVE_KEYS):
        if row["temperature_2m_mean"] is None:
            continue
        points.append(
            TrendPoint(
                date=row["date"],
                temperature=row["temperature_2m_mean"],
                temperature_max=row["temperature_2m_max"],
                temperature_min=row["temperature_2m_min"],
                precipitation=row["precipitation_sum"] or 0.0,
                humidity=row["relative_humidity_2m_mean"],
                wind_speed=row["wind_speed_10m_max"],
            )
        )
    return points


def _bucket_key(point: TrendPoint, bucket: str) -> date:
    if bucket == "week":
        return point.date - timedelta(days=point.date.weekday())
    if bucket == "month":
        return point.date.replace(day=1)
    return point.date


def _avg(values: List[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None


def aggregate(points: List[TrendPoint], bucket: str) -> List[TrendPoint]:
    """Weekly or monthly buckets: mean temperature/humidity/wind, summed precipitation."""
    if bucket == "day":
        return list(points)
    result = []
    for start, group in groupby(points, key=lambda p: _bucket_key(p, bucket)):
        group = list(group)
        highs = [p.temperature_max for p in group if p.temperature_max is not None]
        lows = [p.temperature_min for p in group if p.temperature_min is not None]
        humidity = _avg([p.humidity for p in group])
        wind = _avg([p.wind_speed for p in group])
        result.append(
            TrendPoint(
                date=start,
                temperature=round(_avg([p.temperature for p in group]), 1),
                temperature_max=max(highs) if highs else None,
                temperature_min=min(lows) if lows else None,
                precipitation=round(sum(p.precipitation for p in group), 1),
                humidity=round(humidity) if humidity is not None else None,
                wind_speed=round(wind, 1) if wind is not None else None,
            )
        )
    return result


def calculate_trend(values: List[float]) -> float:
    """Least-squares slope of `values` against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    return (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)


def interpret_trend(slope: float, kind: str) -> Trend:
    threshold = TREND_THRESHOLDS.get(kind, 0.5)
    if abs(slope) < threshold:
        return STABLE
    if slope > threshold * 3:
        return Trend(direction="increasing", magnitude="strong", description="Strong increase")
    if slope > threshold:
        return Trend(direction="increasing", magnitude="moderate", description="Moderate increase")
    if slope < -threshold * 3:
        return Trend(direction="decreasing", magnitude="strong", description="Strong decrease")
    return Trend(direction="decreasing", magnitude="moderate", description="Moderate decrease")


def detect_anomalies(points: List[TrendPoint]) -> List[Anomaly]:
    """Temperatures more than two standard deviations off the mean, and days with >10 mm rain."""
    if not points:
        return []
    temps = [p.temperature for p in points]
    mean = sum(temps) / len(temps)
    std = math.sqrt(sum((t - mean) ** 2 for t in temps) / len(temps))
    anomalies = []
    for p in points:
        deviation = abs(p.temperature - mean)
        if std > 0 and deviation > 2 * std:
            anomalies.append(
                Anomaly(
                    date=p.date,
                    type="temperature",
                    value=p.temperature,
                    deviation=round(deviation, 1),
                    description="Abnormally high temperature"
                    if p.temperature > mean
                    else "Abnormally low temperature",
                )
            )
        if p.precipitation > 10:
            anomalies.append(
                Anomaly(
                    date=p.date,
                    type="precipitation",
                    value=p.precipitation,
                    description="Heavy precipitation",
                )
            )
    return anomalies


def _forecast_description(temp_slope: float, precip_slope: float) -> str:
    if temp_slope > 0.2:
        text = "The next period is expected to bring rising temperatures"
    elif temp_slope < -0.2:
        text = "The next period is expected to bring falling temperatures"
    else:
        text = "The next period is expected to bring stable temperatures"
    if precip_slope > 0.1:
        text += " and more precipitation"
    elif precip_slope < -0.1:
        text += " and less precipitation"
    else:
        text += " with no significant change in precipitation"
    return text + "."


def short_term_forecast(points: List[TrendPoint]) -> ShortTermForecast:
    recent = points[-7:]
    if len(recent) < 3:
        return ShortTermForecast(confidence="low", description="Not enough data for a forecast")
    temp_slope = calculate_trend([p.temperature for p in recent])
    precip_slope = calculate_trend([p.precipitation for p in recent])
    last = recent[-1]
    return ShortTermForecast(
        confidence="high" if len(recent) >= 7 else "medium",
        description=_forecast_description(temp_slope, precip_slope),
        temperature=round(last.temperature + temp_slope, 1),
        precipitation=max(0.0, round(last.precipitation + precip_slope, 1)),
    )


def summarize(
    temperature: Trend, precipitation: Trend, anomalies: List[Anomaly], time_range: str
) -> str:
    period = time_range if time_range in TIME_RANGES else "period"
    summary = f"Weather over the last {period}: temperature {temperature.description.lower()}"
    if precipitation.direction != "stable":
        summary += f", precipitation {precipitation.description.lower()}"
    if anomalies:
        summary += f". {len(anomalies)} anomalies detected"
    return summary + "."


def analyze_trends(
    points: List[TrendPoint], time_range: str, city: str, start: date, end: date
) -> TrendReport:
    if len(points) < 2:
        return TrendReport(
            city=city,
            time_range=time_range,
            period_start=start,
            period_end=end,
            data=points,
            temperature_trend=STABLE,
            precipitation_trend=STABLE,
            humidity_trend=STABLE,
            forecast=ShortTermForecast(confidence="low", description="Not enough data for analysis"),
            summary="Not enough data for analysis",
        )

    temperature = interpret_trend(calculate_trend([p.temperature for p in points]), "temperature")
    precipitation = interpret_trend(calculate_trend([p.precipitation for p in points]), "precipitation")
    humidities = [p.humidity for p in points if p.humidity is not None]
    humidity = interpret_trend(calculate_trend(humidities), "humidity")
    anomalies = detect_anomalies(points)
    return TrendReport(
        city=city,
        time_range=time_range,
        period_start=start,
        period_end=end,
        data=points,
        temperature_trend=temperature,
        precipitation_trend=precipitation,
        humidity_trend=humidity,
        anomalies=anomalies,
        forecast=short_term_forecast(points),
        summary=summarize(temperature, precipitation, anomalies, time_range),
    )


async def get_trends(
    client: httpx.AsyncClient,
    settings: Settings,
    city: str,
    time_range: Optional[str] = None,
    today: Optional[date] = None,
) -> TrendReport:
    time_range = time_range or "month"
    if time_range not in TIME_RANGES:
        raise AnalyticsServiceError(f"Unknown time range '{time_range}'", "INVALID_REQUEST")
    location = await geocode(client, city, settings)
    days, bucket = TIME_RANGES[time_range]
    end = (today or date.today()) - timedelta(days=ARCHIVE_LAG_DAYS)
    start = end - timedelta(days=days)

    key = (round(location.latitude, 3), round(location.longitude, 3), time_range, end)
    cached = _trends_cache.get(key)
    if cached:
        return cached

    params = {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "daily": ",".join(ARCHIVE_KEYS),
        "timezone": "auto",
    }
    data = await get_json(
        client,
        settings.open_meteo_archive_url,
        params,
        domain="trends",
        error_cls=AnalyticsServiceError,
        what="weather history",
        city=city,
    )
    points = aggregate(to_points(data.get("daily") or {}), bucket)
    report = analyze_trends(points, time_range, location.name, start, end)
    _trends_cache.put(key, report, settings.trends_ttl_seconds)
    return report


def yield_recommendations(factors: List[YieldFactor], crop: str) -> List[YieldRecommendation]:
    by_factor = {
        "drought": (
            "high",
            "Increase irrigation",
            "Additional irrigation is needed because of low rainfall",
        ),
        "low_soil_moisture": (
            "high",
            "Intensive soil irrigation",
            "Critically low soil moisture needs immediate action",
        ),
        "high_temperature": ("medium", "Overheating protection", "Consider shading or cooling options"),
        "excess_rain": ("medium", "Provide drainage", "Excess water may require drainage measures"),
    }
    advice = [by_factor[f.factor] for f in factors if f.factor in by_factor]
    advice.extend(CROP_YIELD_ADVICE.get(crop, []))
    return [YieldRecommendation(priority=p, action=a, description=d) for p, a, d in advice]


def _pick(table: List[tuple], value: float) -> tuple:
    for op, threshold, *rest in table:
        if op is None or (op == "<" and value < threshold) or (op == ">" and value > threshold):
            return tuple(rest)
    raise ValueError("factor table has no fallback row")


def predict_yield(crop: Optional[str], points: List[TrendPoint], moisture=None) -> YieldPrediction:
    """Scale the crop's baseline yield by temperature, rainfall and soil-moisture factors."""
    crop = normalize_crop(crop)
    base = BASE_YIELDS.get(crop, BASE_YIELDS["wheat"])
    factor = 1.0
    factors: List[YieldFactor] = []

    if points:
        avg_temp = sum(p.temperature for p in points) / len(points)
        total_precip = sum(p.precipitation for p in points)
        applied = [_pick(TEMPERATURE_FACTORS, avg_temp), _pick(RAIN_FACTORS, total_precip)]
    else:
        applied = []

    reading = coerce(MoistureReading, moisture)
    current = reading.current_moisture if reading else None
    if current is not None:
        applied.append(_pick(SOIL_FACTORS, current))

    for name, multiplier, impact, description in applied:
        factor *= multiplier
        factors.append(YieldFactor(factor=name, impact=impact, description=description))

    predicted = max(base["min"], min(base["max"], base["base"] * factor))
    if factor < 0.8:
        risk, risk_description = "high", "High risk of yield loss"
    elif factor < 0.9:
        risk, risk_description = "medium", "Moderate risk of yield loss"
    else:
        risk, risk_description = "low", "Low risk of yield loss"
    # missing inputs cap confidence
    confidence = "high" if factor > 0.95 else "medium" if factor > 0.85 else "low"
    if not points or current is None:
        confidence = "low"

    return YieldPrediction(
        crop=crop,
        predicted_yield=round(predicted, 1),
        yield_min=round(predicted * 0.85, 1),
        yield_max=round(predicted * 1.15, 1),
        baseline_yield=base["base"],
        yield_factor=round(factor, 2),
        risk_level=risk,
        risk_description=risk_description,
        confidence=confidence,
        factors=factors,
        recommendations=yield_recommendations(factors, crop),
    )


async def get_yield_prediction(
    client: httpx.AsyncClient,
    settings: Settings,
    city: str,
    crop: Optional[str] = None,
    today: Optional[date] = None,
) -> YieldPrediction:
    trends, moisture = await asyncio.gather(
        get_trends(client, settings, city, "season", today),
        get_moisture(client, settings, city=city, today=today),
    )
    return predict_yield(crop or settings.default_crop, trends.data, moisture)


async def get_comprehensive(
    client: httpx.AsyncClient,
    settings: Settings,
    city: str,
    crop: Optional[str] = None,
    today: Optional[date] = None,
    time_range: Optional[str] = None,
) -> ComprehensiveAnalytics:
    """
    Trends and yield prediction side by side. Either part may be missing when
    its provider failed; the call fails only when both do.
    """
    time_range = time_range or "month"
    if time_range not in TIME_RANGES:
        raise AnalyticsServiceError(f"Unknown time range '{time_range}'", "INVALID_REQUEST")
    results = await asyncio.gather(
        get_trends(client, settings, city, time_range, today),
        get_yield_prediction(client, settings, city, crop, today),
        return_exceptions=True,
    )

    parts = []
    failures = []
    for name, result in zip(("trends", "yield_prediction"), results):
        if isinstance(result, ServiceError):
            logger.warning("%s unavailable for %s: %s (%s)", name, city, result.message, result.code)
            failures.append(result)
            parts.append(None)
        elif isinstance(result, BaseException):
            raise result
        else:
            parts.append(result)

    trends, prediction = parts
    if trends is None and prediction is None:
        # caller errors such as an unknown city are reported as such
        if failures[0].status_code < 500:
            raise failures[0]
        raise AnalyticsServiceError(f"No analytics available for {city}", "ANALYTICS_UNAVAILABLE")
    return ComprehensiveAnalytics(trends=trends, yield_prediction=prediction)


def clear_caches() -> None:
    _trends_cache.clear()
