"""
Tests for the statistical forecast, anomaly detection and backend fallback.
"""

from datetime import date, timedelta

import pytest

from cloudoptimizer.core.exceptions import ForecastBackendError
from cloudoptimizer.schemas.analysis import AnomalyType, ForecastResult
from cloudoptimizer.schemas.costs import TimeSeriesPoint
from cloudoptimizer.services.analysis.forecast_backend import ForecastBackend
from cloudoptimizer.services.analysis.forecaster import STATISTICAL_MODEL, ForecastEngine

START = date(2026, 1, 1)


def series_of(costs):
    return [TimeSeriesPoint(date=START + timedelta(days=i), cost=c) for i, c in enumerate(costs)]


class FixedBackend(ForecastBackend):
    name = "fixed"

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def forecast(self, series, horizon_days):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class TestStatisticalForecast:
    """Trend-adjusted moving average."""

    def test_insufficient_data(self):
        result = ForecastEngine().statistical_forecast(series_of([10.0] * 13))
        assert result.success is False
        assert result.model_used == "none"

    def test_constant_series(self):
        result = ForecastEngine().statistical_forecast(series_of([10.0] * 30), horizon_days=30)

        assert result.success is True
        assert result.model_used == STATISTICAL_MODEL
        assert result.monthly_cost_forecast == pytest.approx(300.0)
        assert len(result.daily_forecasts) == 30
        # 0.4 * 30/90 + 0.4 * 1 + 0.2 * (1 - 30/180)
        assert result.confidence == pytest.approx(0.7)
        assert result.lower_bound == pytest.approx(255.0)
        assert result.upper_bound == pytest.approx(345.0)

    def test_rising_trend(self):
        """14 days at 80 then 14 days at 100 with a 14-day window."""
        engine = ForecastEngine(recent_window_days=14)
        result = engine.statistical_forecast(series_of([80.0] * 14 + [100.0] * 14), horizon_days=30)

        daily_trend = 20.0 / 14
        assert result.daily_forecasts[0] == pytest.approx(100.0 + daily_trend)
        assert result.daily_forecasts[1] == pytest.approx(100.0 + 2 * daily_trend)
        assert result.daily_forecasts[0] == pytest.approx(101.43, abs=0.01)

    def test_forecast_never_negative(self):
        engine = ForecastEngine(recent_window_days=14)
        result = engine.statistical_forecast(series_of([100.0] * 14 + [1.0] * 14), horizon_days=30)

        assert all(v >= 0.0 for v in result.daily_forecasts)
        assert result.daily_forecasts[-1] == 0.0

    def test_horizon_beyond_month_sums_first_thirty_days(self):
        result = ForecastEngine().statistical_forecast(series_of([5.0] * 30), horizon_days=60)
        assert len(result.daily_forecasts) == 60
        assert result.monthly_cost_forecast == pytest.approx(150.0)

    def test_bounds_bracket_forecast(self):
        result = ForecastEngine().statistical_forecast(series_of([10.0, 30.0] * 15))
        assert result.lower_bound <= result.monthly_cost_forecast <= result.upper_bound
        assert 0.0 <= result.confidence <= 1.0


class TestAnomalyDetection:
    """Population z-score anomalies."""

    def test_spike_and_drop(self):
        # mean 100, population std 10
        costs = [105.0, 95.0] * 15 + [135.0, 65.0]
        anomalies = ForecastEngine().detect_anomalies(series_of(costs))

        assert len(anomalies) == 2
        spike = next(a for a in anomalies if a.anomaly_type == AnomalyType.SPIKE)
        drop = next(a for a in anomalies if a.anomaly_type == AnomalyType.DROP)

        assert spike.value == 135.0
        assert spike.expected_value == pytest.approx(100.0)
        assert spike.z_score == pytest.approx(3.5)
        assert spike.severity == pytest.approx(3.5)
        assert spike.date == START + timedelta(days=30)
        assert drop.z_score == pytest.approx(-3.5)
        assert drop.severity == pytest.approx(3.5)

    def test_constant_series_has_no_anomalies(self):
        assert ForecastEngine().detect_anomalies(series_of([10.0] * 20)) == []

    def test_empty_series(self):
        assert ForecastEngine().detect_anomalies([]) == []


class TestForecastBackends:
    """Backend first, statistics on failure."""

    @pytest.mark.asyncio
    async def test_backend_result_is_used(self):
        remote = ForecastResult(success=True, monthly_cost_forecast=500.0, confidence=0.9, model_used="remote")
        backend = FixedBackend(result=remote)

        result = await ForecastEngine(backend=backend).forecast(series_of([10.0] * 30))

        assert backend.calls == 1
        assert result.model_used == "remote"
        assert result.monthly_cost_forecast == 500.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ForecastBackendError("endpoint down"), RuntimeError("boom")])
    async def test_backend_failure_falls_back(self, error):
        backend = FixedBackend(error=error)

        result = await ForecastEngine(backend=backend).forecast(series_of([10.0] * 30))

        assert backend.calls == 1
        assert result.success is True
        assert result.model_used == STATISTICAL_MODEL
        assert result.monthly_cost_forecast == pytest.approx(300.0)

    @pytest.mark.asyncio
    async def test_backend_not_called_without_enough_data(self):
        backend = FixedBackend(error=RuntimeError("should not be called"))

        result = await ForecastEngine(backend=backend).forecast(series_of([10.0] * 5))

        assert backend.calls == 0
        assert result.success is False

    @pytest.mark.asyncio
    async def test_forecast_with_anomalies(self):
        costs = [105.0, 95.0] * 15 + [135.0, 65.0]
        result = await ForecastEngine().forecast_with_anomalies(series_of(costs))

        assert result.forecast.success is True
        assert len(result.anomalies) == 2

    @pytest.mark.asyncio
    async def test_no_anomalies_reported_when_forecast_fails(self):
        result = await ForecastEngine().forecast_with_anomalies(series_of([10.0, 500.0] * 3))
        assert result.forecast.success is False
        assert result.anomalies == []
