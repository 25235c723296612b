from datetime import date, timedelta

from agroweather.app.field_calendar import build_calendar, seasonal_operations
from agroweather.app.schemas import ForecastDay, MoistureReading, WeatherSnapshot

JULY = date(2026, 7, 6)


def _forecast(chances, start=JULY):
    return [
        ForecastDay(date=start + timedelta(days=i), precip_probability=chance)
        for i, chance in enumerate(chances)
    ]


class TestBuildCalendar:
    def test_empty_inputs_outside_season(self):
        assert build_calendar(today=JULY) == []

    def test_sorted_by_priority_then_date(self):
        operations = build_calendar(
            weather=WeatherSnapshot(temperature=35, humidity=90, wind_speed=5),
            moisture=MoistureReading(current_moisture=20),
            forecast=_forecast([10, 10, 80, 10]),
            today=JULY,
        )
        assert [op.id for op in operations] == [
            "irrigation-urgent",
            "heat-protection",
            "disease-prevention",
            "rain-2",
        ]
        assert operations[0].date == JULY
        assert operations[2].date == JULY + timedelta(days=1)
        assert operations[3].date == JULY + timedelta(days=2)

    def test_dates_stay_inside_the_week(self):
        operations = build_calendar(forecast=_forecast([90] * 10), today=JULY)
        assert len(operations) == 7
        assert max(op.date for op in operations) == JULY + timedelta(days=6)

    def test_moisture_bands(self):
        planned = build_calendar(moisture={"current_moisture": 33}, today=JULY)
        assert [(op.id, op.date) for op in planned] == [("irrigation-planned", JULY + timedelta(days=1))]
        skipped = build_calendar(moisture={"current_moisture": 80}, today=JULY)
        assert skipped[0].status == "not-needed"
        assert build_calendar(moisture={"current_moisture": 55}, today=JULY) == []

    def test_vegetation_operations(self):
        operations = build_calendar(
            vegetation={"indices": {"ndvi": 0.25, "evi": 0.15}},
            today=JULY,
        )
        assert [op.id for op in operations] == ["fertilization", "leaf-feeding"]
        assert operations[0].recommendation.startswith("Low NDVI 25%")

    def test_enveloped_vegetation(self):
        operations = build_calendar(
            vegetation={"success": True, "data": {"indices": {"ndvi": 0.25, "evi": 0.15}}},
            today=JULY,
        )
        assert [op.id for op in operations] == ["fertilization", "leaf-feeding"]

    def test_rain_days_follow_forecast_dates(self):
        # forecast fetched yesterday still starts on yesterday
        forecast = _forecast([90, 10, 80, 10], start=JULY - timedelta(days=1))
        operations = build_calendar(forecast=forecast, today=JULY)
        assert [(op.id, op.date) for op in operations] == [("rain-1", JULY + timedelta(days=1))]

    def test_strong_wind(self):
        operations = build_calendar(weather={"temperature": 20, "wind_speed": 22}, today=JULY)
        assert [op.type for op in operations] == ["restriction"]

    def test_frost(self):
        operations = build_calendar(weather={"temperature": -2}, today=date(2026, 1, 12))
        assert operations[0].id == "frost-protection"


class TestSeasonalOperations:
    def test_wheat_in_spring(self):
        operations = seasonal_operations("wheat", date(2026, 4, 10))
        assert [(op.id, op.date) for op in operations] == [("wheat-spring", date(2026, 4, 14))]

    def test_corn_not_in_march(self):
        assert seasonal_operations("corn", date(2026, 3, 10)) == []

    def test_other_crops_get_general_inspection(self):
        operations = build_calendar(crop="barley", today=date(2026, 5, 1))
        assert [(op.id, op.date) for op in operations] == [("general-spring", date(2026, 5, 3))]

    def test_local_crop_name(self):
        operations = build_calendar(crop="кукурудза", today=date(2026, 4, 1))
        assert operations[0].id == "corn-planting"
        assert operations[0].priority == "high"
