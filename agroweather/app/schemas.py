from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Priority = Literal["high", "medium", "low"]
AlertType = Literal["error", "warning", "info", "success"]
RiskLevel = Literal["normal", "moderate-dry", "high-dry", "moderate-wet", "high-wet"]


class GeoLocation(BaseModel):
    name: str
    latitude: float
    longitude: float
    timezone: str = "auto"
    country: Optional[str] = None


class WeatherSnapshot(BaseModel):
    city: str = ""
    country: Optional[str] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = Field(None, description="km/h")
    description: Optional[str] = None
    sunrise: Optional[str] = None
    sunset: Optional[str] = None
    max_temperature: Optional[float] = None
    min_temperature: Optional[float] = None
    observed_at: Optional[datetime] = None


class ForecastDay(BaseModel):
    date: date
    temperature: Optional[float] = None
    min_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    description: Optional[str] = None
    condition_code: Optional[int] = None
    precip_probability: float = 0.0


class HourlyForecast(BaseModel):
    time: datetime
    temperature: Optional[float] = None
    description: Optional[str] = None
    wind_speed: Optional[float] = None
    humidity: Optional[float] = None
    icon: Optional[str] = None


class AirQuality(BaseModel):
    index: Optional[float] = Field(None, description="European AQI")
    pm2_5: Optional[float] = None
    pm10: Optional[float] = None
    carbon_monoxide: Optional[float] = None
    nitrogen_dioxide: Optional[float] = None
    sulphur_dioxide: Optional[float] = None
    ozone: Optional[float] = None
    observed_at: Optional[datetime] = None


class MoistureProjection(BaseModel):
    date: date
    moisture: float
    optimal: bool
    precip_probability: float = 0.0
    temperature: Optional[float] = None


class MoistureReading(BaseModel):
    current_moisture: Optional[float] = Field(None, ge=0, le=100)
    historical_average: Optional[float] = None
    moisture_difference: Optional[float] = None
    precipitation_last_30_days: Optional[float] = None
    evapotranspiration_last_30_days: Optional[float] = None
    moisture_balance: Optional[float] = None
    risk_level: RiskLevel = "normal"
    source: str = "open-meteo"
    last_updated: Optional[datetime] = None
    projection: List[MoistureProjection] = []


class VegetationIndices(BaseModel):
    ndvi: Optional[float] = None
    evi: Optional[float] = None
    savi: Optional[float] = None
    ndwi: Optional[float] = None
    lai: Optional[float] = None


class VegetationHealth(BaseModel):
    score: int = 0
    status: str = "unknown"
    stress_level: str = "unknown"
    description: str = ""


class VegetationHistoryPoint(BaseModel):
    date: date
    ndvi: float
    evi: float
    savi: float


class VegetationData(BaseModel):
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    indices: VegetationIndices
    health: VegetationHealth
    health_index: str
    vegetation_status: str
    historical: List[VegetationHistoryPoint] = []
    source: str = "nasa-power"
    last_updated: Optional[datetime] = None


class Classification(BaseModel):
    status: str
    color: str


class RecommendationAction(BaseModel):
    priority: Priority
    action: str
    timing: str


class IrrigationAdvice(BaseModel):
    status: str
    message: str
    next_action: str
    timing: str
    priority: Priority
    water_amount: float = Field(0, description="l/m2")
    moisture: Optional[int] = None
    historical: Optional[int] = None
    classification: Classification
    recommendations: List[str] = []
    actions: List[RecommendationAction] = []


class RiskAdvice(BaseModel):
    risk_level: str
    label: str
    color: str
    recommendation: str


class CropMoistureAdvice(BaseModel):
    crop: str
    crop_name: str
    current_moisture: Optional[float] = None
    optimal_min: float
    optimal_max: float
    status: str
    recommendation: str


class CropHealthAnalysis(BaseModel):
    status: str
    score: int
    recommendations: List[str] = []
    alerts: List[str] = []
    action_plan: List[RecommendationAction] = []


class WeatherAdvice(BaseModel):
    immediate: List[str] = []
    upcoming: List[str] = []
    alerts: List[str] = []
    work_window: str
    priority: Priority


class Alert(BaseModel):
    id: str
    type: AlertType
    title: str
    message: str
    timestamp: Optional[datetime] = None
    priority: Priority


class CalendarOperation(BaseModel):
    id: str
    name: str
    type: str
    date: date
    priority: Priority
    status: str
    recommendation: str
    source: str


class TrendPoint(BaseModel):
    date: date
    temperature: float
    temperature_max: Optional[float] = None
    temperature_min: Optional[float] = None
    precipitation: float = 0.0
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None


class Trend(BaseModel):
    direction: Literal["increasing", "decreasing", "stable"]
    magnitude: Literal["strong", "moderate", "minimal"]
    description: str


class Anomaly(BaseModel):
    date: date
    type: str
    value: float
    deviation: Optional[float] = None
    description: str


class ShortTermForecast(BaseModel):
    confidence: str
    description: str
    temperature: Optional[float] = None
    precipitation: Optional[float] = None


class TrendReport(BaseModel):
    city: str
    time_range: str
    period_start: date
    period_end: date
    data: List[TrendPoint]
    temperature_trend: Trend
    precipitation_trend: Trend
    humidity_trend: Trend
    anomalies: List[Anomaly] = []
    forecast: ShortTermForecast
    summary: str


class YieldFactor(BaseModel):
    factor: str
    impact: int
    description: str


class YieldRecommendation(BaseModel):
    priority: Priority
    action: str
    description: str


class YieldPrediction(BaseModel):
    crop: str
    predicted_yield: float = Field(description="t/ha")
    yield_min: float
    yield_max: float
    baseline_yield: float
    yield_factor: float
    risk_level: Priority
    risk_description: str
    confidence: Priority
    factors: List[YieldFactor]
    recommendations: List[YieldRecommendation]


class ComprehensiveAnalytics(BaseModel):
    trends: Optional[TrendReport] = None
    yield_prediction: Optional[YieldPrediction] = None


class CitySnapshot(BaseModel):
    city: str
    generation: int = 0
    fetched_at: datetime
    location: Optional[GeoLocation] = None
    weather: Optional[WeatherSnapshot] = None
    forecast: List[ForecastDay] = []
    air_quality: Optional[AirQuality] = None
    moisture: Optional[MoistureReading] = None
    vegetation: Optional[VegetationData] = None
    errors: dict[str, str] = {}


class MoistureSummary(BaseModel):
    classification: Classification
    risk: RiskAdvice
    projection: List[MoistureProjection] = []


class Dashboard(BaseModel):
    snapshot: CitySnapshot
    unit: str
    unit_symbol: str
    temperature: Optional[int] = None
    moisture: MoistureSummary
    vegetation: dict[str, Classification]
    irrigation: IrrigationAdvice
    crop_health: CropHealthAnalysis
    weather_advice: WeatherAdvice
    alerts: List[Alert]
    calendar: List[CalendarOperation]
    overall_score: int
