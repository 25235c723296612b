import pytest

from agroweather.app.formatting import (
    celsius_to_fahrenheit,
    fahrenheit_to_celsius,
    format_temperature,
    normalize_unit,
    unit_symbol,
)


class TestConversions:
    def test_round_trip_points(self):
        assert celsius_to_fahrenheit(100) == 212
        assert fahrenheit_to_celsius(32) == 0


class TestFormatTemperature:
    @pytest.mark.parametrize(
        "value, expected",
        [(21.4, 21), (21.5, 22), (22.5, 23), (-0.5, 0), (-1.6, -2)],
    )
    def test_half_up_rounding(self, value, expected):
        assert format_temperature(value) == expected

    def test_fahrenheit(self):
        assert format_temperature(20, "fahrenheit") == 68
        assert format_temperature(-40, "F") == -40

    def test_missing_value(self):
        assert format_temperature(None, "fahrenheit") is None


class TestNormalizeUnit:
    def test_aliases(self):
        assert normalize_unit("Imperial") == "fahrenheit"
        assert normalize_unit("c") == "celsius"
        assert normalize_unit(None) == "celsius"
        assert normalize_unit("", default="fahrenheit") == "fahrenheit"

    def test_unknown_unit(self):
        with pytest.raises(ValueError):
            normalize_unit("kelvin")

    def test_symbols(self):
        assert unit_symbol("fahrenheit") == "°F"
        assert unit_symbol("metric") == "°C"
