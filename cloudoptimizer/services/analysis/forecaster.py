"""
Cost Forecasting Engine

Produces N-day cost forecasts with a confidence band, and flags anomalous days.

The statistical model is always available: it projects the recent average
forward along the trend between the recent and preceding windows. An optional
remote backend is tried first; any failure there falls back to statistics and
is only visible to callers through `model_used`.
"""

from typing import List, Optional

import numpy as np
import pandas as pd
import structlog

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.metrics import FORECAST_RUNS
from cloudoptimizer.schemas.analysis import (
    AnomalyPoint,
    AnomalyType,
    ForecastResult,
    ForecastWithAnomalies,
)
from cloudoptimizer.schemas.costs import TimeSeriesPoint
from cloudoptimizer.services.analysis.forecast_backend import ForecastBackend

logger = structlog.get_logger()

STATISTICAL_MODEL = "statistical-fallback"


class ForecastEngine:
    def __init__(
        self,
        backend: Optional[ForecastBackend] = None,
        min_data_points: Optional[int] = None,
        recent_window_days: Optional[int] = None,
        anomaly_z_threshold: Optional[float] = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.min_data_points = min_data_points or settings.FORECAST_MIN_DATA_POINTS
        self.recent_window_days = recent_window_days or settings.FORECAST_RECENT_WINDOW_DAYS
        self.anomaly_z_threshold = anomaly_z_threshold or settings.ANOMALY_Z_THRESHOLD
        self.data_weight = settings.FORECAST_DATA_WEIGHT
        self.variance_weight = settings.FORECAST_VARIANCE_WEIGHT
        self.horizon_weight = settings.FORECAST_HORIZON_WEIGHT

    async def forecast(self, series: List[TimeSeriesPoint], horizon_days: int = 30) -> ForecastResult:
        if len(series) < self.min_data_points:
            logger.info("insufficient_data_for_forecast", count=len(series), required=self.min_data_points)
            return ForecastResult.insufficient_data()

        if self.backend is not None:
            try:
                result = await self.backend.forecast(series, horizon_days)
                FORECAST_RUNS.labels(model=result.model_used).inc()
                return result
            except Exception as e:
                logger.warning("forecast_backend_failed_using_fallback",
                               backend=self.backend.name,
                               error=str(e))

        return self.statistical_forecast(series, horizon_days)

    def statistical_forecast(self, series: List[TimeSeriesPoint], horizon_days: int = 30) -> ForecastResult:
        n = len(series)
        if n < self.min_data_points:
            return ForecastResult.insufficient_data()

        costs = np.array([p.cost for p in series], dtype=float)

        recent_period = min(self.recent_window_days, n)
        recent_avg = float(costs[n - recent_period:].mean())

        earlier_period = min(recent_period, n - recent_period)
        if earlier_period > 0:
            earlier = costs[n - recent_period - earlier_period:n - recent_period]
            earlier_avg = float(earlier.mean())
        else:
            earlier_avg = recent_avg

        daily_trend = (recent_avg - earlier_avg) / recent_period
        daily = [max(0.0, recent_avg + daily_trend * (i + 1)) for i in range(horizon_days)]
        monthly = float(sum(daily[:min(30, horizon_days)]))

        # Population variance over the whole series
        variance = float(costs.var())
        data_confidence = min(1.0, n / 90)
        variance_confidence = 1 / (1 + np.sqrt(variance) / 100)
        horizon_confidence = max(0.0, 1 - horizon_days / 180)
        confidence = float(
            self.data_weight * data_confidence
            + self.variance_weight * variance_confidence
            + self.horizon_weight * horizon_confidence
        )

        margin = (1 - confidence) * 0.5
        FORECAST_RUNS.labels(model=STATISTICAL_MODEL).inc()
        logger.debug("statistical_forecast_complete",
                     points=n,
                     daily_trend=round(daily_trend, 4),
                     confidence=round(confidence, 3))

        return ForecastResult(
            success=True,
            monthly_cost_forecast=monthly,
            daily_forecasts=daily,
            confidence=confidence,
            lower_bound=monthly * (1 - margin),
            upper_bound=monthly * (1 + margin),
            model_used=STATISTICAL_MODEL,
        )

    def detect_anomalies(self, series: List[TimeSeriesPoint]) -> List[AnomalyPoint]:
        """Flag days whose cost z-score (population mean/std) exceeds the threshold."""
        if not series:
            return []

        df = pd.DataFrame([{"date": p.date, "cost": p.cost} for p in series])
        mean = float(df["cost"].mean())
        std = float(df["cost"].std(ddof=0))
        if std == 0 or np.isnan(std):
            df["z"] = 0.0
        else:
            df["z"] = (df["cost"] - mean) / std

        flagged = df[df["z"].abs() > self.anomaly_z_threshold]
        anomalies = [
            AnomalyPoint(
                date=row.date,
                value=float(row.cost),
                expected_value=mean,
                z_score=float(row.z),
                severity=abs(float(row.z)),
                anomaly_type=AnomalyType.SPIKE if row.z > 0 else AnomalyType.DROP,
            )
            for row in flagged.itertuples(index=False)
        ]

        if anomalies:
            logger.info("cost_anomalies_detected", count=len(anomalies))
        return anomalies

    async def forecast_with_anomalies(
        self,
        series: List[TimeSeriesPoint],
        horizon_days: int = 30
    ) -> ForecastWithAnomalies:
        forecast = await self.forecast(series, horizon_days)
        anomalies = self.detect_anomalies(series) if forecast.success else []
        return ForecastWithAnomalies(forecast=forecast, anomalies=anomalies)
