from datetime import date

import pytest
from fastapi.testclient import TestClient

from agroweather.app import main
from agroweather.app.config import get_settings
from agroweather.app.dashboard import SnapshotStore
from agroweather.app.main import app, get_http, get_store

from payloads import (
    AIR_QUALITY,
    ARCHIVE,
    GEOCODING,
    NASA_POWER,
    OPEN_METEO_FORECAST,
    WEATHERAPI,
    air_quality_payload,
    archive_payload,
    geocoding_payload,
    moisture_payload,
    power_payload,
    weatherapi_payload,
)


def _routes(**overrides):
    today = date.today()
    routes = {
        GEOCODING: geocoding_payload(),
        WEATHERAPI: weatherapi_payload(start=today),
        AIR_QUALITY: air_quality_payload(),
        OPEN_METEO_FORECAST: moisture_payload(today),
        NASA_POWER: power_payload(),
        ARCHIVE: archive_payload(),
    }
    routes.update(overrides)
    return routes


@pytest.fixture
def api(provider_client, settings):
    def build(**overrides) -> TestClient:
        client = provider_client(_routes(**overrides))
        store = SnapshotStore()
        app.dependency_overrides[get_http] = lambda: client
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_settings] = lambda: settings
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


class TestService:
    def test_health(self, api):
        resp = api().get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_metrics(self, api):
        resp = api().get("/metrics")
        assert resp.status_code == 200
        assert "provider_fetches_total" in resp.text

    def test_api_key_required_when_configured(self, api, monkeypatch):
        monkeypatch.setattr(main.settings, "api_key", "secret")
        client = api()
        assert client.get("/api/weather/current/Kyiv").status_code == 401
        resp = client.get("/api/weather/current/Kyiv", headers={"X-API-Key": "secret"})
        assert resp.status_code == 200


class TestWeatherEndpoints:
    def test_current(self, api):
        resp = api().get("/api/weather/current/Kyiv")
        assert resp.status_code == 200
        assert resp.json()["temperature"] == 22.0

    def test_forecast(self, api):
        resp = api().get("/api/weather/forecast/Kyiv")
        assert resp.status_code == 200
        assert [d["date"] for d in resp.json()][0] == date.today().isoformat()
        assert len(resp.json()) == 7

    def test_provider_rejects_city(self, api):
        resp = api(**{WEATHERAPI: (400, {"error": {"code": 1006}})}).get("/api/weather/current/Nowhere")
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_REQUEST"

    def test_air_quality(self, api):
        resp = api().get("/api/weather/air-quality/Kyiv")
        assert resp.json()["index"] == 35.0


class TestMoistureEndpoints:
    def test_by_coordinates(self, api):
        resp = api().get("/api/weather/moisture", params={"lat": 50.45, "lon": 30.52})
        assert resp.status_code == 200
        body = resp.json()
        assert body["current_moisture"] == 50.0
        assert body["risk_level"] == "normal"
        assert len(body["projection"]) == 10

    def test_provider_failure_returns_placeholder(self, api):
        resp = api(**{OPEN_METEO_FORECAST: (502, {})}).get("/api/weather/moisture", params={"city": "Kyiv"})
        assert resp.status_code == 200
        assert resp.json()["source"] == "placeholder"
        assert resp.json()["current_moisture"] is None

    def test_missing_parameters(self, api):
        resp = api().get("/api/weather/moisture")
        assert resp.status_code == 400
        assert resp.json()["detail"] == {"error": "City or coordinates are required", "code": "PARAMS_MISSING"}

    def test_irrigation(self, api):
        resp = api().get("/api/weather/moisture/irrigation", params={"city": "Kyiv"})
        assert resp.json()["next_action"] == "Planned irrigation"

    def test_crop_recommendations(self, api):
        resp = api().get("/api/weather/moisture/crop-recommendations", params={"city": "Kyiv", "crop": "corn"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "optimal"


class TestVegetationEndpoints:
    def test_by_city(self, api):
        resp = api().get("/api/vegetation/Kyiv")
        assert resp.status_code == 200
        assert resp.json()["health"]["status"] == "moderate"

    def test_unknown_city(self, api):
        resp = api(**{GEOCODING: {"results": []}}).get("/api/vegetation/Atlantis")
        assert resp.status_code == 404
        assert resp.json()["detail"] == {"error": "City 'Atlantis' not found", "code": "CITY_NOT_FOUND"}

    def test_by_coordinates(self, api):
        resp = api().get("/api/vegetation/coordinates/50.45/30.52")
        assert resp.status_code == 200
        assert resp.json()["latitude"] == 50.45

    def test_recommendations(self, api):
        resp = api().get("/api/vegetation/Kyiv/recommendations", params={"crop": "wheat"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "moderate"


class TestAnalyticsEndpoints:
    def test_trends(self, api):
        resp = api().get("/api/analytics/trends/Kyiv", params={"timeRange": "week"})
        assert resp.status_code == 200
        assert resp.json()["time_range"] == "week"

    def test_invalid_range(self, api):
        resp = api().get("/api/analytics/trends/Kyiv", params={"timeRange": "decade"})
        assert resp.status_code == 400

    def test_yield_prediction(self, api):
        resp = api().get("/api/analytics/yield-prediction/Kyiv", params={"crop": "corn"})
        assert resp.status_code == 200
        assert resp.json()["crop"] == "corn"

    def test_comprehensive(self, api):
        body = api().get("/api/analytics/comprehensive/Kyiv").json()
        assert body["trends"]["time_range"] == "month"
        assert body["yield_prediction"]["crop"] == "wheat"

    def test_comprehensive_partial(self, api):
        client = api(**{OPEN_METEO_FORECAST: (503, {})})
        resp = client.get("/api/analytics/comprehensive/Kyiv", params={"timeRange": "week"})
        assert resp.status_code == 200
        assert resp.json()["trends"]["time_range"] == "week"
        assert resp.json()["yield_prediction"] is None


class TestDashboardEndpoints:
    def test_dashboard(self, api):
        resp = api().get("/api/dashboard/Kyiv", params={"units": "imperial"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["unit"] == "fahrenheit"
        assert body["unit_symbol"] == "°F"
        assert body["temperature"] == 72
        assert body["snapshot"]["errors"] == {}
        assert body["irrigation"]["moisture"] == 50

    def test_dashboard_survives_domain_failure(self, api):
        resp = api(**{NASA_POWER: (500, {})}).get("/api/dashboard/Kyiv")
        assert resp.status_code == 200
        body = resp.json()
        assert body["snapshot"]["errors"] == {"vegetation": "SERVER_ERROR"}
        assert body["crop_health"]["status"] == "unknown"

    def test_invalid_unit(self, api):
        assert api().get("/api/dashboard/Kyiv", params={"units": "kelvin"}).status_code == 400

    def test_alerts(self, api):
        client = api(**{WEATHERAPI: weatherapi_payload(temperature=35.0, start=date.today())})
        body = client.get("/api/alerts/Kyiv", params={"priority": "high"}).json()
        assert [a["id"] for a in body["alerts"]] == ["temp_high"]
        assert body["counts"]["high"] == 1

        body = client.get("/api/alerts/Kyiv", params={"dismissed": "temp_high"}).json()
        assert body["alerts"] == []

    def test_alerts_priority_validation(self, api):
        assert api().get("/api/alerts/Kyiv", params={"priority": "urgent"}).status_code == 422

    def test_calendar(self, api):
        client = api(**{WEATHERAPI: weatherapi_payload(humidity=90, start=date.today())})
        resp = client.get("/api/calendar/Kyiv")
        assert resp.status_code == 200
        assert "disease-prevention" in [op["id"] for op in resp.json()]
