from datetime import date

import pytest

from agroweather.app.errors import MoistureServiceError
from agroweather.app.moisture import (
    build_reading,
    classify_risk,
    estimate_historical_moisture,
    estimate_moisture,
    get_crop_recommendations,
    get_moisture,
    get_moisture_or_placeholder,
    make_placeholder,
    project_moisture,
)

from payloads import GEOCODING, OPEN_METEO_FORECAST, geocoding_payload, moisture_payload

TODAY = date(2026, 6, 15)


class TestWaterBalance:
    @pytest.mark.parametrize(
        "balance, expected",
        [(600, 95.0), (60, 76.0), (30, 66.0), (0, 50.0), (-30, 30.0), (-100, 5.0)],
    )
    def test_estimate_moisture(self, balance, expected):
        assert estimate_moisture(balance) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "difference, level",
        [(-25, "high-dry"), (-15, "moderate-dry"), (-10, "normal"), (0, "normal"), (15, "moderate-wet"),
         (25, "high-wet")],
    )
    def test_classify_risk(self, difference, level):
        assert classify_risk(difference) == level

    def test_historical_estimate_is_clamped(self):
        wet = [{"precipitation_sum": 30.0, "temperature_2m_max": 15, "temperature_2m_min": 5}]
        assert estimate_historical_moisture(0, wet) == 70.0
        dry = [{"precipitation_sum": 0.0, "temperature_2m_max": 45, "temperature_2m_min": 35}]
        assert estimate_historical_moisture(80, dry) == 30.0

    def test_projection_follows_forecast_balance(self):
        rows = [
            {"date": date(2026, 6, 15), "precipitation_sum": 0.0, "et0_fao_evapotranspiration": 4.0},
            {"date": date(2026, 6, 16), "precipitation_sum": 20.0, "et0_fao_evapotranspiration": 4.0},
        ]
        projection = project_moisture(50.0, rows)
        assert [p.moisture for p in projection] == [49.0, 53.0]
        assert all(p.optimal for p in projection)


class TestBuildReading:
    def test_balanced_month_is_normal(self):
        reading = build_reading(50.45, moisture_payload(TODAY)["daily"], TODAY)
        assert reading.current_moisture == 50.0
        assert reading.historical_average == 49.4
        assert reading.risk_level == "normal"
        assert reading.precipitation_last_30_days == 60.0
        assert reading.moisture_balance == 0.0
        assert len(reading.projection) == 10
        assert reading.projection[0].date == TODAY

    def test_dry_month(self):
        daily = moisture_payload(TODAY, past_precipitation=0.0, past_et0=3.0)["daily"]
        reading = build_reading(50.45, daily, TODAY)
        assert reading.current_moisture == 5.0
        assert reading.risk_level == "high-dry"

    def test_no_past_days(self):
        daily = moisture_payload(TODAY, past_days=0)["daily"]
        with pytest.raises(MoistureServiceError) as exc_info:
            build_reading(50.45, daily, TODAY)
        assert exc_info.value.code == "DATA_PROCESSING_ERROR"

    def test_placeholder(self):
        placeholder = make_placeholder()
        assert placeholder.current_moisture is None
        assert placeholder.source == "placeholder"


class TestGetMoisture:
    @pytest.mark.asyncio
    async def test_by_coordinates(self, provider_client, settings):
        client = provider_client({OPEN_METEO_FORECAST: moisture_payload(TODAY)})
        reading = await get_moisture(client, settings, lat=50.45, lon=30.52, today=TODAY)
        assert reading.current_moisture == 50.0
        params = client.get.call_args.kwargs["params"]
        assert params["past_days"] == 30
        assert params["forecast_days"] == 10

    @pytest.mark.asyncio
    async def test_readings_are_cached(self, provider_client, settings):
        client = provider_client({OPEN_METEO_FORECAST: moisture_payload(TODAY)})
        await get_moisture(client, settings, lat=50.45, lon=30.52, today=TODAY)
        await get_moisture(client, settings, lat=50.4501, lon=30.5199, today=TODAY)
        assert client.get.call_count == 1

    @pytest.mark.asyncio
    async def test_by_city(self, provider_client, settings):
        client = provider_client(
            {GEOCODING: geocoding_payload(), OPEN_METEO_FORECAST: moisture_payload(TODAY)}
        )
        reading = await get_moisture(client, settings, city="Kyiv", today=TODAY)
        assert reading.risk_level == "normal"

    @pytest.mark.asyncio
    async def test_parameters_required(self, provider_client, settings):
        with pytest.raises(MoistureServiceError) as exc_info:
            await get_moisture(provider_client({}), settings)
        assert exc_info.value.code == "PARAMS_MISSING"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, provider_client, settings):
        with pytest.raises(MoistureServiceError) as exc_info:
            await get_moisture(provider_client({}), settings, lat=95.0, lon=30.0)
        assert exc_info.value.code == "INVALID_COORDINATES"


class TestMoistureFallback:
    @pytest.mark.asyncio
    async def test_provider_failure_yields_placeholder(self, provider_client, settings):
        client = provider_client({OPEN_METEO_FORECAST: (500, {"reason": "down"})})
        reading = await get_moisture_or_placeholder(client, settings, lat=50.45, lon=30.52, today=TODAY)
        assert reading.source == "placeholder"
        assert reading.current_moisture is None

    @pytest.mark.asyncio
    async def test_bad_parameters_still_raise(self, provider_client, settings):
        with pytest.raises(MoistureServiceError):
            await get_moisture_or_placeholder(provider_client({}), settings, lat=-91.0, lon=0.0)

    @pytest.mark.asyncio
    async def test_crop_recommendations(self, provider_client, settings):
        client = provider_client(
            {
                GEOCODING: geocoding_payload(),
                OPEN_METEO_FORECAST: moisture_payload(date.today(), past_precipitation=0.0, past_et0=3.0),
            }
        )
        advice = await get_crop_recommendations(client, settings, "Kyiv", "corn")
        assert advice.crop == "corn"
        assert advice.status == "critical-dry"
