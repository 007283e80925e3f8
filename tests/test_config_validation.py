"""
Settings validation: misordered thresholds must refuse to load.
"""

import pytest
from pydantic import ValidationError

from cloudoptimizer.core.config import Settings, get_settings


class TestSettingsValidation:
    def test_defaults_are_valid(self):
        settings = Settings()
        assert settings.IDLE_THRESHOLD < settings.UNDERUTILIZED_THRESHOLD < settings.OVERUTILIZED_THRESHOLD
        assert settings.HOURS_PER_MONTH == 730

    def test_test_environment_is_not_production(self):
        assert get_settings().TESTING is True
        assert get_settings().is_production is False

    @pytest.mark.parametrize("overrides", [
        {"IDLE_THRESHOLD": 0.3},
        {"UNDERUTILIZED_THRESHOLD": 0.9},
        {"OVERUTILIZED_THRESHOLD": 1.5},
        {"IDLE_THRESHOLD": 0.0},
    ])
    def test_utilization_threshold_order(self, overrides):
        with pytest.raises(ValidationError, match="Utilization thresholds"):
            Settings(**overrides)

    def test_partial_must_be_below_validated(self):
        with pytest.raises(ValidationError, match="PARTIAL_THRESHOLD"):
            Settings(PARTIAL_THRESHOLD=0.6)

    def test_forecast_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError, match="must sum to 1.0"):
            Settings(FORECAST_DATA_WEIGHT=0.5)

    def test_rebalanced_weights_accepted(self):
        settings = Settings(FORECAST_DATA_WEIGHT=0.5, FORECAST_VARIANCE_WEIGHT=0.3)
        assert settings.FORECAST_HORIZON_WEIGHT == 0.2

    def test_minimum_data_points(self):
        with pytest.raises(ValidationError, match="Minimum data point"):
            Settings(FORECAST_MIN_DATA_POINTS=1)
