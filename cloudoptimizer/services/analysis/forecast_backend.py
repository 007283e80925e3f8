"""
Pluggable forecast backends tried ahead of the statistical forecast.

A backend either returns a full ForecastResult or raises; the ForecastEngine
treats any failure as "fall back to statistics".
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import structlog
import tenacity

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.exceptions import ForecastBackendError
from cloudoptimizer.schemas.analysis import ForecastResult
from cloudoptimizer.schemas.costs import TimeSeriesPoint

logger = structlog.get_logger()


class ForecastBackend(ABC):
    name: str = "backend"

    @abstractmethod
    async def forecast(self, series: List[TimeSeriesPoint], horizon_days: int) -> ForecastResult:
        pass


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    logger.warning(
        "forecast_backend_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


class RemoteForecastBackend(ForecastBackend):
    """
    HTTP forecast model endpoint.

    Request:  POST {endpoint} {"horizon_days": N, "series": [{"date": ..., "cost": ...}]}
    Response: {"daily_forecasts": [...], "confidence": 0..1,
               "lower_bound"?: float, "upper_bound"?: float, "model"?: str}
    """

    name = "remote"

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds or settings.FORECAST_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.FORECAST_MAX_RETRIES
        self._client = client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, payload: dict) -> dict:
        retrying = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
            wait=tenacity.wait_exponential(multiplier=0.5, min=0.5, max=4),
            stop=tenacity.stop_after_attempt(self.max_retries + 1),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if self._client is not None:
                    response = await self._client.post(
                        self.endpoint, json=payload, headers=self._headers(), timeout=self.timeout_seconds
                    )
                else:
                    async with httpx.AsyncClient() as client:
                        response = await client.post(
                            self.endpoint, json=payload, headers=self._headers(), timeout=self.timeout_seconds
                        )
                response.raise_for_status()
                return response.json()

    async def forecast(self, series: List[TimeSeriesPoint], horizon_days: int) -> ForecastResult:
        payload = {
            "horizon_days": horizon_days,
            "series": [{"date": p.date.isoformat(), "cost": p.cost} for p in series],
        }
        try:
            data = await self._post(payload)
        except (httpx.HTTPError, ValueError) as e:
            raise ForecastBackendError(f"Forecast endpoint request failed: {e}")

        daily = data.get("daily_forecasts") if isinstance(data, dict) else None
        if not daily:
            raise ForecastBackendError("Forecast endpoint returned no daily forecasts")

        try:
            daily = [max(0.0, float(v)) for v in daily[:horizon_days]]
            confidence = min(1.0, max(0.0, float(data.get("confidence", 0.0))))
        except (TypeError, ValueError):
            raise ForecastBackendError("Forecast endpoint returned a malformed payload")

        monthly = sum(daily[:min(30, horizon_days)])
        margin = (1 - confidence) * 0.5
        return ForecastResult(
            success=True,
            monthly_cost_forecast=monthly,
            daily_forecasts=daily,
            confidence=confidence,
            lower_bound=float(data.get("lower_bound", monthly * (1 - margin))),
            upper_bound=float(data.get("upper_bound", monthly * (1 + margin))),
            model_used=str(data.get("model", self.name)),
        )


def build_forecast_backend() -> Optional[ForecastBackend]:
    settings = get_settings()
    if not settings.FORECAST_ENDPOINT:
        return None
    return RemoteForecastBackend(settings.FORECAST_ENDPOINT, api_key=settings.FORECAST_ENDPOINT_KEY)
