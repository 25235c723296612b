from typing import Dict, Iterable, List, Optional

from .schemas import Classification, VegetationHealth, VegetationIndices

UNKNOWN = Classification(status="unknown", color="#999999")

# Ordered bands per metric: first band whose comparison holds wins.
# A band with op None matches anything and must come last.
BANDS: Dict[str, List[dict]] = {
    "moisture": [
        {"op": "<", "threshold": 20, "status": "critical dry", "color": "#d32f2f"},
        {"op": "<", "threshold": 30, "status": "low", "color": "#f44336"},
        {"op": "<", "threshold": 40, "status": "insufficient", "color": "#ff9800"},
        {"op": "<=", "threshold": 70, "status": "optimal", "color": "#4caf50"},
        {"op": "<=", "threshold": 85, "status": "high", "color": "#2196f3"},
        {"op": None, "threshold": None, "status": "excessive", "color": "#9c27b0"},
    ],
    "ndvi": [
        {"op": "<", "threshold": 0.1, "status": "no vegetation", "color": "#d32f2f"},
        {"op": "<", "threshold": 0.3, "status": "very low vegetation", "color": "#ff5722"},
        {"op": "<", "threshold": 0.5, "status": "low vegetation", "color": "#ffc107"},
        {"op": "<", "threshold": 0.7, "status": "moderate vegetation", "color": "#8bc34a"},
        {"op": "<", "threshold": 0.9, "status": "high vegetation", "color": "#4caf50"},
        {"op": None, "threshold": None, "status": "very high vegetation", "color": "#2e7d32"},
    ],
    "evi": [
        {"op": "<", "threshold": 0.2, "status": "very low vegetation", "color": "#ff5722"},
        {"op": "<", "threshold": 0.4, "status": "low vegetation", "color": "#ffc107"},
        {"op": "<", "threshold": 0.6, "status": "moderate vegetation", "color": "#8bc34a"},
        {"op": "<", "threshold": 0.8, "status": "high vegetation", "color": "#4caf50"},
        {"op": None, "threshold": None, "status": "very high vegetation", "color": "#2e7d32"},
    ],
    "health_index": [
        {"op": "<", "threshold": 0.2, "status": "critical", "color": "#d32f2f"},
        {"op": "<", "threshold": 0.4, "status": "poor", "color": "#f44336"},
        {"op": "<", "threshold": 0.6, "status": "moderate", "color": "#ff9800"},
        {"op": "<", "threshold": 0.8, "status": "good", "color": "#8bc34a"},
        {"op": None, "threshold": None, "status": "excellent", "color": "#4caf50"},
    ],
    "vegetation_status": [
        {"op": "<", "threshold": 0.2, "status": "very low vegetation", "color": "#ff5722"},
        {"op": "<", "threshold": 0.4, "status": "low vegetation", "color": "#ffc107"},
        {"op": "<", "threshold": 0.6, "status": "moderate vegetation", "color": "#8bc34a"},
        {"op": "<", "threshold": 0.8, "status": "high vegetation", "color": "#4caf50"},
        {"op": None, "threshold": None, "status": "very high vegetation", "color": "#2e7d32"},
    ],
    "health_score": [
        {"op": ">=", "threshold": 75, "status": "excellent", "color": "#4caf50"},
        {"op": ">=", "threshold": 60, "status": "good", "color": "#8bc34a"},
        {"op": ">=", "threshold": 40, "status": "moderate", "color": "#ff9800"},
        {"op": None, "threshold": None, "status": "poor", "color": "#f44336"},
    ],
    "overall_score": [
        {"op": ">=", "threshold": 80, "status": "excellent", "color": "#4caf50"},
        {"op": ">=", "threshold": 65, "status": "good", "color": "#8bc34a"},
        {"op": ">=", "threshold": 50, "status": "moderate", "color": "#ff9800"},
        {"op": None, "threshold": None, "status": "poor", "color": "#f44336"},
    ],
}
# SAVI shares the EVI table.
BANDS["savi"] = BANDS["evi"]

RISK_LEVELS = {
    "high-dry": {"label": "High drought risk", "color": "#d32f2f"},
    "moderate-dry": {"label": "Moderate drought risk", "color": "#f57c00"},
    "high-wet": {"label": "High waterlogging risk", "color": "#1976d2"},
    "moderate-wet": {"label": "Moderate waterlogging risk", "color": "#0288d1"},
    "normal": {"label": "Normal conditions", "color": "#388e3c"},
}

STRESS_LEVELS = {
    "excellent": "very_low",
    "good": "low",
    "moderate": "medium",
    "poor": "high",
}


def _compare(value, op: Optional[str], threshold) -> bool:
    if op is None:
        return True
    if op == "<":
        return value < threshold
    if op == "<=":
        return value <= threshold
    if op == ">=":
        return value >= threshold
    if op == ">":
        return value > threshold
    return False


def _as_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def classify(value, metric: str, bands: Optional[Iterable[dict]] = None) -> Classification:
    """Map a metric value to its status band. Missing or non-numeric values are `unknown`."""
    number = _as_number(value)
    table = list(bands) if bands is not None else BANDS.get(metric)
    if number is None or not table:
        return UNKNOWN
    for band in table:
        if _compare(number, band["op"], band["threshold"]):
            return Classification(status=band["status"], color=band["color"])
    return UNKNOWN


def classify_moisture(value) -> Classification:
    return classify(value, "moisture")


def classify_index(value, index: str) -> Classification:
    return classify(value, index.lower())


def classify_indices(indices: Optional[VegetationIndices]) -> Dict[str, Classification]:
    """Status of every index that has a table; untabled indices (ndwi, lai) are skipped."""
    indices = indices or VegetationIndices()
    return {name: classify_index(getattr(indices, name), name) for name in ("ndvi", "evi", "savi")}


def classify_risk_level(risk_level: Optional[str]) -> Classification:
    info = RISK_LEVELS.get(risk_level or "normal", RISK_LEVELS["normal"])
    return Classification(status=info["label"], color=info["color"])


def health_index(ndvi) -> str:
    return classify(ndvi, "health_index").status


def vegetation_status(ndvi) -> str:
    return classify(ndvi, "vegetation_status").status


def vegetation_score(indices: Optional[VegetationIndices]) -> Optional[float]:
    """Weighted 0..100 score from NDVI, EVI, LAI and NDWI; None when no index is present."""
    if indices is None:
        return None
    parts = []
    if indices.ndvi:
        parts.append(indices.ndvi * 40)
    if indices.evi:
        parts.append(indices.evi * 30)
    if indices.lai:
        parts.append(min(indices.lai / 6, 1) * 20)
    if indices.ndwi:
        parts.append(max(0.0, indices.ndwi) * 10)
    if not parts:
        return None
    return sum(parts)


def vegetation_health(indices: Optional[VegetationIndices]) -> VegetationHealth:
    score = vegetation_score(indices)
    if score is None:
        return VegetationHealth(description="No vegetation indices available")
    status = classify(score, "health_score").status
    descriptions = {
        "excellent": "Vegetation is dense and vigorous",
        "good": "Vegetation is in good condition",
        "moderate": "Vegetation shows moderate stress",
        "poor": "Vegetation is stressed or sparse",
    }
    return VegetationHealth(
        score=round(score),
        status=status,
        stress_level=STRESS_LEVELS[status],
        description=descriptions[status],
    )


def overall_score(
    temperature: Optional[float] = None,
    moisture: Optional[float] = None,
    health_score: Optional[float] = None,
) -> int:
    """Average of per-domain scores for the domains that are present, 0 if none are."""
    scores = []
    if temperature is not None:
        scores.append(100 if 15 <= temperature <= 25 else 50)
    if moisture is not None:
        scores.append(100 if 40 <= moisture <= 70 else 50)
    if health_score is not None:
        scores.append(health_score)
    if not scores:
        return 0
    return round(sum(scores) / len(scores))
