import pytest

from agroweather.app.classifier import (
    UNKNOWN,
    classify,
    classify_index,
    classify_indices,
    classify_moisture,
    classify_risk_level,
    health_index,
    overall_score,
    vegetation_health,
    vegetation_score,
    vegetation_status,
)
from agroweather.app.schemas import VegetationIndices


class TestClassifyMoisture:
    @pytest.mark.parametrize(
        "value, status",
        [
            (5, "critical dry"),
            (19, "critical dry"),
            (19.9, "critical dry"),
            (20, "low"),
            (29, "low"),
            (30, "insufficient"),
            (35, "insufficient"),
            (39.9, "insufficient"),
            (40, "optimal"),
            (70, "optimal"),
            (85, "high"),
            (85.1, "excessive"),
        ],
    )
    def test_bands(self, value, status):
        assert classify_moisture(value).status == status

    def test_colors_come_with_status(self):
        assert classify_moisture(55).color == "#4caf50"

    @pytest.mark.parametrize("value", [None, "wet", True, [], {}])
    def test_missing_or_non_numeric_is_unknown(self, value):
        result = classify_moisture(value)
        assert result == UNKNOWN
        assert result.color == "#999999"

    def test_numeric_strings_are_accepted(self):
        assert classify_moisture("55").status == "optimal"


class TestClassifyIndex:
    @pytest.mark.parametrize(
        "value, status",
        [
            (0.05, "no vegetation"),
            (0.1, "very low vegetation"),
            (0.25, "very low vegetation"),
            (0.3, "low vegetation"),
            (0.5, "moderate vegetation"),
            (0.75, "high vegetation"),
            (0.95, "very high vegetation"),
        ],
    )
    def test_ndvi_bands(self, value, status):
        assert classify_index(value, "ndvi").status == status

    def test_index_name_is_case_insensitive(self):
        assert classify_index(0.1, "NDVI").status == "very low vegetation"

    def test_savi_uses_evi_table(self):
        assert classify_index(0.3, "savi") == classify_index(0.3, "evi")

    def test_unknown_metric(self):
        assert classify(0.5, "chlorophyll") == UNKNOWN

    def test_custom_bands(self):
        bands = [{"op": ">", "threshold": 10, "status": "hot", "color": "#f00"}]
        assert classify(11, "anything", bands).status == "hot"
        assert classify(9, "anything", bands) == UNKNOWN

    def test_indices_without_data(self):
        result = classify_indices(None)
        assert set(result) == {"ndvi", "evi", "savi"}
        assert all(c == UNKNOWN for c in result.values())


class TestVegetationHealth:
    def test_score_weights(self):
        indices = VegetationIndices(ndvi=0.5, evi=0.4, lai=3.0, ndwi=0.2)
        assert vegetation_score(indices) == pytest.approx(20 + 12 + 10 + 2)

    def test_score_without_indices(self):
        assert vegetation_score(VegetationIndices()) is None
        assert vegetation_score(None) is None

    def test_health_status_and_stress(self):
        health = vegetation_health(VegetationIndices(ndvi=0.9, evi=0.8, lai=6.0, ndwi=0.3))
        assert health.status == "excellent"
        assert health.stress_level == "very_low"

    def test_poor_health(self):
        health = vegetation_health(VegetationIndices(ndvi=0.2, evi=0.1))
        assert health.score == 11
        assert health.status == "poor"
        assert health.stress_level == "high"

    def test_unknown_health(self):
        assert vegetation_health(None).status == "unknown"

    def test_ndvi_labels(self):
        assert health_index(0.65) == "good"
        assert health_index(None) == "unknown"
        assert vegetation_status(0.3) == "low vegetation"


class TestRiskLevel:
    def test_known_level(self):
        assert classify_risk_level("high-dry").status == "High drought risk"

    def test_missing_level_is_normal(self):
        assert classify_risk_level(None).status == "Normal conditions"


class TestOverallScore:
    def test_average_of_present_domains(self):
        assert overall_score(20, 50, 80) == 93

    def test_out_of_range_values_score_half(self):
        assert overall_score(35, 90) == 50

    def test_missing_domains_are_skipped(self):
        assert overall_score(moisture=55) == 100

    def test_no_data(self):
        assert overall_score() == 0
