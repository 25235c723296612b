"""
Recommendation rules.

Every rule block inspects its own metric and appends zero or more entries;
nothing is deduplicated and conflicting advice is not reconciled.
"""
from datetime import date
from typing import Any, List, Optional

from .classifier import UNKNOWN, classify, classify_moisture, classify_risk_level, vegetation_score
from .crops import MOISTURE_RANGES, normalize_crop
from .normalize import coerce, unwrap
from .schemas import (
    CropHealthAnalysis,
    CropMoistureAdvice,
    ForecastDay,
    IrrigationAdvice,
    MoistureReading,
    RecommendationAction,
    RiskAdvice,
    VegetationData,
    VegetationIndices,
    WeatherAdvice,
    WeatherSnapshot,
)

# Irrigation advice per moisture band; first matching band wins.
IRRIGATION_RULES = [
    {
        "op": "<",
        "threshold": 20,
        "status": "error",
        "message": "Critically low soil moisture! Irrigation is needed urgently.",
        "next_action": "Immediate intensive irrigation",
        "timing": "Now",
        "priority": "high",
        "water_amount": 25,
    },
    {
        "op": "<",
        "threshold": 35,
        "status": "warning",
        "message": "Low soil moisture. Irrigation is recommended soon.",
        "next_action": "Moderate irrigation",
        "timing": "Within 12-24 hours",
        "priority": "medium",
        "water_amount": 15,
    },
    {
        "op": ">",
        "threshold": 80,
        "status": "info",
        "message": "High soil moisture. Avoid irrigation for the next few days.",
        "next_action": "Pause irrigation",
        "timing": "Next irrigation in 5-7 days",
        "priority": "low",
        "water_amount": 0,
    },
    {
        "op": ">",
        "threshold": 65,
        "status": "success",
        "message": "Optimal soil moisture. Light maintenance irrigation.",
        "next_action": "Maintenance irrigation",
        "timing": "In 2-3 days",
        "priority": "low",
        "water_amount": 8,
    },
    {
        "op": None,
        "threshold": None,
        "status": "success",
        "message": "Soil moisture is normal. Standard irrigation schedule.",
        "next_action": "Planned irrigation",
        "timing": "In 3-4 days",
        "priority": "medium",
        "water_amount": 12,
    },
]

RISK_RECOMMENDATIONS = {
    "high-dry": "Irrigate as soon as possible and apply mulch to limit evaporation.",
    "moderate-dry": "Plan irrigation within the next days and watch the rain forecast.",
    "high-wet": "Stop irrigation and check field drainage.",
    "moderate-wet": "Reduce irrigation and avoid heavy machinery on wet soil.",
    "normal": "Keep the current irrigation schedule.",
}


def _action(priority: str, action: str, timing: str) -> RecommendationAction:
    return RecommendationAction(priority=priority, action=action, timing=timing)


def _soil_actions(moisture: float) -> tuple[str, List[str]]:
    if moisture < 30:
        return "Urgent irrigation", [
            "Adjust the irrigation schedule to the precipitation forecast",
            "Use drip irrigation to save water",
            "Apply mulch to reduce evaporation",
        ]
    if moisture > 85:
        return "Reduce irrigation", [
            "Check the state of drainage systems",
            "Temporarily pause irrigation until moisture normalizes",
            "Use deep loosening to improve drainage",
        ]
    if 40 <= moisture <= 70:
        return "Keep the regime", [
            "Continue the current irrigation regime",
            "Monitor the weather forecast to correct irrigation",
            "Check soil condition regularly",
        ]
    return "Monitor the field", [
        "Watch for changes in soil moisture",
        "Be ready to adjust the irrigation regime",
    ]


def recommend_irrigation(moisture: Any) -> IrrigationAdvice:
    reading = coerce(MoistureReading, moisture)
    value = reading.current_moisture if reading else None
    if value is None:
        return IrrigationAdvice(
            status="info",
            message="No data available to build recommendations",
            next_action="Waiting for data",
            timing="Unknown",
            priority="low",
            classification=UNKNOWN,
        )

    rule = next(
        r for r in IRRIGATION_RULES
        if r["op"] is None
        or (r["op"] == "<" and value < r["threshold"])
        or (r["op"] == ">" and value > r["threshold"])
    )
    historical = reading.historical_average if reading.historical_average is not None else 50
    primary, recommendations = _soil_actions(value)

    actions = [_action(rule["priority"], rule["next_action"], rule["timing"])]
    if value < 30:
        actions.append(_action("high", primary, "Now" if value < 20 else "Within 24 hours"))

    return IrrigationAdvice(
        status=rule["status"],
        message=rule["message"],
        next_action=rule["next_action"],
        timing=rule["timing"],
        priority=rule["priority"],
        water_amount=rule["water_amount"],
        moisture=round(value),
        historical=round(historical),
        classification=classify_moisture(value),
        recommendations=recommendations,
        actions=actions,
    )


def advise_risk_level(moisture: Any) -> RiskAdvice:
    """Advice from the provider-side `risk_level`, independent of `current_moisture`."""
    reading = coerce(MoistureReading, moisture)
    level = reading.risk_level if reading else "normal"
    label = classify_risk_level(level)
    return RiskAdvice(
        risk_level=level,
        label=label.status,
        color=label.color,
        recommendation=RISK_RECOMMENDATIONS[level],
    )


def advise_crop_moisture(moisture: Any, crop: Optional[str] = None) -> CropMoistureAdvice:
    crop = normalize_crop(crop)
    bounds = MOISTURE_RANGES.get(crop, MOISTURE_RANGES["default"])
    name = bounds["name"]
    reading = coerce(MoistureReading, moisture)
    value = reading.current_moisture if reading else None

    if value is None:
        status = "unknown"
        recommendation = f"No soil moisture data available for {name}."
    elif value < bounds["min"] - 10:
        status = "critical-dry"
        recommendation = (
            f"Critically low moisture for {name}. Irrigate immediately to prevent yield loss."
        )
    elif value < bounds["min"]:
        status = "dry"
        recommendation = f"Moisture is below optimal for {name}. Irrigate within the next 1-2 days."
    elif value > bounds["max"] + 10:
        status = "critical-wet"
        recommendation = (
            f"Critically high moisture for {name}. Avoid additional irrigation "
            "and drain the plots if possible."
        )
    elif value > bounds["max"]:
        status = "wet"
        recommendation = f"Moisture is above optimal for {name}. No irrigation for the next 5-7 days."
    else:
        status = "optimal"
        recommendation = f"Optimal moisture for {name}. Keep the current irrigation regime."

    return CropMoistureAdvice(
        crop=crop,
        crop_name=name,
        current_moisture=value,
        optimal_min=bounds["min"],
        optimal_max=bounds["max"],
        status=status,
        recommendation=recommendation,
    )


def _below(value: Optional[float], threshold: float) -> bool:
    return value is not None and value < threshold


def _above(value: Optional[float], threshold: float) -> bool:
    return value is not None and value > threshold


def _crop_specific(crop: str, indices: VegetationIndices, weather: Optional[WeatherSnapshot]):
    recommendations: List[str] = []
    alerts: List[str] = []
    actions: List[RecommendationAction] = []
    humidity = weather.humidity if weather else None
    temperature = weather.temperature if weather else None

    if crop == "wheat":
        if _below(indices.ndvi, 0.4):
            recommendations.append("Wheat needs nitrogen feeding")
            actions.append(_action("medium", "Nitrogen fertilizer (30-40 kg/ha)", "Tillering stage"))
        if _above(humidity, 80):
            alerts.append("Risk of wheat rust")
    elif crop == "corn":
        if _above(temperature, 25) and _below(indices.evi, 0.3):
            recommendations.append("Corn needs intensive irrigation")
            actions.append(_action("high", "Irrigation 40-50 mm", "Flowering stage"))
    elif crop == "sunflower":
        if _below(indices.ndvi, 0.5):
            recommendations.append("Sunflower is sensitive to water stress")
    return recommendations, alerts, actions


def analyze_crop_health(
    vegetation: Any,
    weather: Any = None,
    moisture: Any = None,
    crop: Optional[str] = None,
) -> CropHealthAnalysis:
    data = unwrap(vegetation)
    if isinstance(data, dict) and "indices" in data:
        data = data["indices"]
    elif isinstance(data, VegetationData):
        data = data.indices
    indices = coerce(VegetationIndices, data)
    if indices is None or vegetation_score(indices) is None:
        return CropHealthAnalysis(
            status="unknown", score=0, recommendations=["No data available for analysis"]
        )

    score = vegetation_score(indices)
    status = classify(score, "health_score").status
    recommendations: List[str] = []
    alerts: List[str] = []
    plan: List[RecommendationAction] = []

    if _below(indices.ndvi, 0.3):
        alerts.append("Low photosynthetic activity")
        recommendations.append("Check soil condition and nutrition")
        plan.append(_action("high", "Soil analysis and feeding", "2-3 days"))
    if _below(indices.evi, 0.2):
        alerts.append("Weak vegetation development")
        recommendations.append("Consider additional fertilization")
        plan.append(_action("medium", "Foliar feeding", "3-5 days"))
    if _below(indices.lai, 2):
        recommendations.append("Optimize sowing density next season")
    if _below(indices.ndwi, -0.1):
        alerts.append("Plant water stress")
        plan.append(_action("high", "Additional irrigation", "24 hours"))

    snapshot = coerce(WeatherSnapshot, weather)
    if snapshot:
        if _above(snapshot.temperature, 30):
            alerts.append("Plant heat stress")
            recommendations.append("Provide additional irrigation because of high temperature")
            plan.append(_action("high", "Cooling irrigation", "Daily before 8:00"))
        if _above(snapshot.humidity, 85):
            alerts.append("Risk of fungal diseases")
            plan.append(_action("medium", "Preventive spraying", "When possible"))

    reading = coerce(MoistureReading, moisture)
    if reading and _below(reading.current_moisture, 25):
        alerts.append("Critically low soil moisture")
        plan.append(_action("high", "Intensive irrigation", "Immediately"))

    extra_recs, extra_alerts, extra_plan = _crop_specific(normalize_crop(crop), indices, snapshot)
    recommendations.extend(extra_recs)
    alerts.extend(extra_alerts)
    plan.extend(extra_plan)

    if score >= 70:
        recommendations.append("Keep the current care regime")
    else:
        recommendations.append("Intensify care and monitoring")

    return CropHealthAnalysis(
        status=status,
        score=round(score),
        recommendations=recommendations,
        alerts=alerts,
        action_plan=plan,
    )


PRIORITY_ORDER = {"low": 1, "medium": 2, "high": 3}


def _raise_priority(current: str, floor: str) -> str:
    return floor if PRIORITY_ORDER[floor] > PRIORITY_ORDER[current] else current


def advise_weather(weather: Any, forecast: Any = None, today: Optional[date] = None) -> WeatherAdvice:
    snapshot = coerce(WeatherSnapshot, weather)
    if snapshot is None:
        return WeatherAdvice(work_window="No data available", priority="low")

    today = today or date.today()
    temp = snapshot.temperature
    humidity = snapshot.humidity
    wind = snapshot.wind_speed
    immediate: List[str] = []
    upcoming: List[str] = []
    alerts: List[str] = []
    work_window = "Favorable conditions for field work"
    priority = "low"

    if _below(temp, 0):
        alerts.append("Frost! Risk of plant damage")
        immediate.append("Apply frost protection measures")
        work_window = "Limited possibilities for field work"
        priority = "high"
    elif _above(temp, 32):
        alerts.append("Heat! Avoid working during the day")
        immediate.append("Work only in the morning (before 9:00) and evening (after 18:00)")
        work_window = "Work only in the morning and evening"
        priority = "medium"
    elif _above(temp, 25):
        immediate.append("Optimal conditions for field work")
        upcoming.append("Monitor plants for signs of heat stress")

    if _above(humidity, 85):
        alerts.append("High risk of fungal diseases")
        immediate.append("Apply preventive fungicides")
        immediate.append("Postpone irrigation until humidity drops")
        priority = _raise_priority(priority, "medium")
    elif _below(humidity, 40):
        immediate.append("Low humidity, increase irrigation")
        upcoming.append("Apply mulch to retain moisture")

    # km/h
    if _above(wind, 15):
        alerts.append("Strong wind! Stop field work")
        immediate.append("Stop spraying and precision work")
        work_window = "Dangerous for field work"
        priority = "high"
    elif _above(wind, 10):
        immediate.append("Strong wind, avoid spraying")
        upcoming.append("Check plant ties")
    elif _below(wind, 3):
        immediate.append("Calm, ideal conditions for spraying")

    days = [d for d in (coerce(ForecastDay, d) for d in (forecast or [])) if d is not None]
    if days:
        today_rain = days[0].precip_probability
        tomorrow_rain = days[1].precip_probability if len(days) > 1 else 0
        if today_rain > 70:
            alerts.append("Rain expected today")
            immediate.append("Finish urgent work now")
            work_window = "Limited possibilities because of rain"
        elif tomorrow_rain > 70:
            immediate.append("Rain expected tomorrow, finish work today")
            upcoming.append("Prepare equipment for work after the rain")
        rainy = sum(1 for d in days if d.precip_probability > 40)
        if rainy >= 4:
            upcoming.append("Rainy week, prepare drainage systems")
        elif rainy == 0:
            upcoming.append("Dry weather, check irrigation systems")

    month = today.month
    if 3 <= month <= 5:
        if temp is not None and 5 < temp < 25:
            upcoming.append("Favorable conditions for spring sowing")
    elif 6 <= month <= 8:
        if _above(temp, 25):
            immediate.append("Irrigate during cool hours")
        upcoming.append("Control moisture and plant condition")
    elif 9 <= month <= 11:
        upcoming.append("Time to harvest and prepare for winter")
    else:
        upcoming.append("Time for planning and maintenance")

    if not immediate:
        immediate.append("Favorable conditions for planned work")

    return WeatherAdvice(
        immediate=immediate,
        upcoming=upcoming,
        alerts=alerts,
        work_window=work_window,
        priority=priority,
    )
