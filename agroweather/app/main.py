import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import analytics, moisture, vegetation, weather
from .alerts import alerts_for_snapshot, count_by_priority, filter_alerts
from .config import Settings, get_settings
from .dashboard import SnapshotStore, build_dashboard, refresh
from .errors import ServiceError
from .field_calendar import build_calendar
from .formatting import normalize_unit
from .recommendations import analyze_crop_health, recommend_irrigation
from .schemas import (
    AirQuality,
    Alert,
    CalendarOperation,
    ComprehensiveAnalytics,
    CropHealthAnalysis,
    CropMoistureAdvice,
    Dashboard,
    ForecastDay,
    HourlyForecast,
    MoistureReading,
    TrendReport,
    VegetationData,
    WeatherSnapshot,
    YieldPrediction,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    app.state.store = SnapshotStore()
    if not settings.weather_enabled:
        logger.warning("WEATHERAPI_KEY is not set; weather endpoints will return 503")

    yield

    await app.state.http.aclose()


app = FastAPI(
    title="Agro Weather",
    version="0.1.0",
    description="Weather, soil moisture and vegetation data with farming recommendations.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"error": exc.message, "code": exc.code}},
    )


async def get_http(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


async def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


async def require_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
    expected = settings.api_key
    if expected and x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")


def parse_unit(units: Optional[str], default: str) -> str:
    try:
        return normalize_unit(units, default)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
async def health(request: Request):
    store = getattr(request.app.state, "store", None)
    return {
        "status": "ok",
        "weather_provider": "configured" if settings.weather_enabled else "missing key",
        "cities_tracked": len(store) if store else 0,
    }


@app.get(
    "/api/weather/current/{city}",
    response_model=WeatherSnapshot,
    summary="Current conditions via WeatherAPI.com",
)
async def current_weather(
    city: str,
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await weather.get_current_weather(http, city, settings)


@app.get("/api/weather/forecast/{city}", response_model=List[ForecastDay])
async def forecast(
    city: str,
    days: Optional[int] = Query(None, ge=1, le=14),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await weather.get_forecast(http, city, settings, days=days)


@app.get("/api/weather/hourly/{city}", response_model=List[HourlyForecast])
async def hourly_forecast(
    city: str,
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await weather.get_hourly_forecast(http, city, settings)


@app.get("/api/weather/air-quality/{city}", response_model=AirQuality)
async def air_quality(
    city: str,
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await weather.get_air_quality(http, city, settings)


@app.get(
    "/api/weather/moisture",
    response_model=MoistureReading,
    summary="Estimated soil moisture; falls back to a placeholder when the provider fails.",
)
async def soil_moisture(
    city: Optional[str] = Query(None),
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await moisture.get_moisture_or_placeholder(http, settings, city=city, lat=lat, lon=lon)


@app.get("/api/weather/moisture/irrigation")
async def irrigation(
    city: str = Query(...),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    reading = await moisture.get_moisture_or_placeholder(http, settings, city=city)
    return recommend_irrigation(reading)


@app.get("/api/weather/moisture/crop-recommendations", response_model=CropMoistureAdvice)
async def crop_recommendations(
    city: str = Query(...),
    crop: Optional[str] = Query(None),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await moisture.get_crop_recommendations(http, settings, city, crop)


@app.get("/api/vegetation/coordinates/{lat}/{lon}", response_model=VegetationData)
async def vegetation_by_coordinates(
    lat: float,
    lon: float,
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await vegetation.get_vegetation(http, settings, lat=lat, lon=lon)


@app.get("/api/vegetation/{city}", response_model=VegetationData)
async def vegetation_by_city(
    city: str,
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await vegetation.get_vegetation(http, settings, city=city)


@app.get("/api/vegetation/{city}/recommendations", response_model=CropHealthAnalysis)
async def vegetation_recommendations(
    city: str,
    crop: Optional[str] = Query(None),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    store: SnapshotStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    snapshot = await refresh(http, settings, city, store)
    return analyze_crop_health(
        snapshot.vegetation, snapshot.weather, snapshot.moisture, crop or settings.default_crop
    )


@app.get("/api/analytics/trends/{city}", response_model=TrendReport)
async def trends(
    city: str,
    time_range: Optional[str] = Query("month", alias="timeRange"),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await analytics.get_trends(http, settings, city, time_range)


@app.get("/api/analytics/yield-prediction/{city}", response_model=YieldPrediction)
async def yield_prediction(
    city: str,
    crop: Optional[str] = Query(None),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await analytics.get_yield_prediction(http, settings, city, crop or settings.default_crop)


@app.get("/api/analytics/comprehensive/{city}", response_model=ComprehensiveAnalytics)
async def comprehensive(
    city: str,
    crop: Optional[str] = Query(None),
    time_range: Optional[str] = Query("month", alias="timeRange"),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(get_settings),
):
    return await analytics.get_comprehensive(
        http, settings, city, crop or settings.default_crop, time_range=time_range
    )


@app.get(
    "/api/dashboard/{city}",
    response_model=Dashboard,
    summary="Snapshot of every domain with classifications, recommendations, alerts and calendar.",
)
async def dashboard(
    city: str,
    crop: Optional[str] = Query(None),
    units: Optional[str] = Query(None),
    dismissed: List[str] = Query([]),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    store: SnapshotStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    unit = parse_unit(units, settings.default_temperature_unit)
    snapshot = await refresh(http, settings, city, store)
    return build_dashboard(snapshot, crop or settings.default_crop, unit, dismissed=dismissed)


@app.get("/api/alerts/{city}")
async def alerts(
    city: str,
    priority: Optional[str] = Query(None, pattern="^(all|high|medium|low)$"),
    dismissed: List[str] = Query([]),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    store: SnapshotStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    snapshot = await refresh(http, settings, city, store)
    found: List[Alert] = alerts_for_snapshot(snapshot, dismissed)
    return {
        "alerts": filter_alerts(found, priority),
        "counts": count_by_priority(found),
        "errors": snapshot.errors,
    }


@app.get("/api/calendar/{city}", response_model=List[CalendarOperation])
async def calendar(
    city: str,
    crop: Optional[str] = Query(None),
    _: None = Depends(require_api_key),
    http: httpx.AsyncClient = Depends(get_http),
    store: SnapshotStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    snapshot = await refresh(http, settings, city, store)
    return build_calendar(
        snapshot.weather,
        snapshot.moisture,
        snapshot.vegetation,
        snapshot.forecast,
        crop or settings.default_crop,
    )


@app.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
