"""
Utilization Classification

Classifies a resource's utilization regime from its daily time series and
derives rightsizing guidance. Classification is recomputed on every call.

Order of checks (first match wins):
  longest idle streak >= idle days  -> IDLE
  no CPU samples                    -> INSUFFICIENT_DATA
  avg CPU < idle threshold          -> IDLE
  avg CPU < underutilized threshold -> UNDERUTILIZED
  avg CPU > overutilized threshold  -> OVERUTILIZED
  otherwise                         -> OPTIMIZED
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.schemas.analysis import (
    RightsizingAction,
    RightsizingAnalysis,
    TrendDirection,
    UtilizationClassification,
    UtilizationStatus,
    UtilizationTrend,
)
from cloudoptimizer.schemas.costs import NormalizedResourceCost, TimeSeriesPoint

logger = structlog.get_logger()


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}%"


def format_config(vcpu: int, memory_gb: float) -> str:
    return f"{vcpu} vCPU / {memory_gb:.0f} GB"


@dataclass
class UtilizationStats:
    avg_cpu: Optional[float]
    max_cpu: Optional[float]
    avg_memory: Optional[float]
    max_memory: Optional[float]
    max_consecutive_idle_days: int


class UtilizationClassifier:
    def __init__(
        self,
        idle_threshold: Optional[float] = None,
        underutilized_threshold: Optional[float] = None,
        overutilized_threshold: Optional[float] = None,
        idle_days_threshold: Optional[int] = None,
    ):
        settings = get_settings()
        self.idle_threshold = idle_threshold if idle_threshold is not None else settings.IDLE_THRESHOLD
        self.underutilized_threshold = (
            underutilized_threshold if underutilized_threshold is not None else settings.UNDERUTILIZED_THRESHOLD
        )
        self.overutilized_threshold = (
            overutilized_threshold if overutilized_threshold is not None else settings.OVERUTILIZED_THRESHOLD
        )
        self.idle_days_threshold = idle_days_threshold or settings.IDLE_DAYS_THRESHOLD
        self.min_data_points = settings.UTILIZATION_MIN_DATA_POINTS
        self.trend_min_data_points = settings.TREND_MIN_DATA_POINTS
        self.trend_stable_delta = settings.TREND_STABLE_DELTA

    def _calculate_stats(self, series: List[TimeSeriesPoint]) -> UtilizationStats:
        cpu_values: List[float] = []
        memory_values: List[float] = []
        streak = 0
        longest_streak = 0

        for point in series:
            # Points without CPU data neither extend nor break an idle streak
            if point.cpu_utilization is not None:
                cpu_values.append(point.cpu_utilization)
                if point.cpu_utilization < self.idle_threshold:
                    streak += 1
                    longest_streak = max(longest_streak, streak)
                else:
                    streak = 0

            if point.memory_utilization is not None:
                memory_values.append(point.memory_utilization)

        return UtilizationStats(
            avg_cpu=sum(cpu_values) / len(cpu_values) if cpu_values else None,
            max_cpu=max(cpu_values) if cpu_values else None,
            avg_memory=sum(memory_values) / len(memory_values) if memory_values else None,
            max_memory=max(memory_values) if memory_values else None,
            max_consecutive_idle_days=longest_streak,
        )

    def _classify_status(self, stats: UtilizationStats) -> UtilizationStatus:
        if stats.max_consecutive_idle_days >= self.idle_days_threshold:
            return UtilizationStatus.IDLE

        avg_cpu = stats.avg_cpu
        if avg_cpu is None:
            return UtilizationStatus.INSUFFICIENT_DATA
        if avg_cpu < self.idle_threshold:
            return UtilizationStatus.IDLE
        if avg_cpu < self.underutilized_threshold:
            return UtilizationStatus.UNDERUTILIZED
        if avg_cpu > self.overutilized_threshold:
            return UtilizationStatus.OVERUTILIZED
        return UtilizationStatus.OPTIMIZED

    @staticmethod
    def _confidence(stats: UtilizationStats, data_points: int) -> float:
        data_confidence = min(1.0, data_points / 30)

        avg_cpu = stats.avg_cpu
        if avg_cpu is None:
            clarity = 0.0
        elif avg_cpu < 0.1 or avg_cpu > 0.9:
            clarity = 0.95
        elif avg_cpu < 0.2 or avg_cpu > 0.8:
            clarity = 0.85
        else:
            clarity = 0.7

        return data_confidence * 0.4 + clarity * 0.6

    def _reasoning(self, status: UtilizationStatus, stats: UtilizationStats) -> str:
        cpu_info = f"{format_percent(stats.avg_cpu)} avg CPU" if stats.avg_cpu is not None else "no CPU data"

        if status == UtilizationStatus.IDLE:
            return f"Resource idle for {stats.max_consecutive_idle_days} consecutive days ({cpu_info})"
        if status == UtilizationStatus.UNDERUTILIZED:
            return f"Resource underutilized at {cpu_info}, max {format_percent(stats.max_cpu)}"
        if status == UtilizationStatus.OPTIMIZED:
            return f"Resource well-utilized at {cpu_info}"
        if status == UtilizationStatus.OVERUTILIZED:
            return f"Resource overutilized at {cpu_info}, max {format_percent(stats.max_cpu)}"
        return f"Need at least {self.min_data_points} days of data"

    def classify(self, series: List[TimeSeriesPoint]) -> UtilizationClassification:
        n = len(series)
        if n < self.min_data_points:
            return UtilizationClassification.insufficient(n, f"Insufficient data: {n} points")

        stats = self._calculate_stats(series)
        status = self._classify_status(stats)
        confidence = self._confidence(stats, n)

        logger.debug("utilization_classified",
                     status=status.value,
                     points=n,
                     avg_cpu=stats.avg_cpu,
                     idle_streak=stats.max_consecutive_idle_days)

        return UtilizationClassification(
            status=status,
            confidence=confidence,
            avg_cpu_utilization=stats.avg_cpu,
            max_cpu_utilization=stats.max_cpu,
            avg_memory_utilization=stats.avg_memory,
            max_memory_utilization=stats.max_memory,
            max_consecutive_idle_days=stats.max_consecutive_idle_days,
            data_points=n,
            reasoning=self._reasoning(status, stats),
        )

    def batch_classify(self, series_by_resource: Dict[str, List[TimeSeriesPoint]]) -> Dict[str, UtilizationClassification]:
        return {resource_id: self.classify(series) for resource_id, series in series_by_resource.items()}

    def detect_trend(self, series: List[TimeSeriesPoint]) -> UtilizationTrend:
        n = len(series)
        if n < self.trend_min_data_points:
            return UtilizationTrend(
                direction=TrendDirection.UNKNOWN,
                description="Insufficient data for trend analysis",
            )

        midpoint = n // 2
        first = self._calculate_stats(series[:midpoint])
        second = self._calculate_stats(series[midpoint:])

        if first.avg_cpu is not None and second.avg_cpu is not None:
            change = second.avg_cpu - first.avg_cpu
        else:
            change = 0.0

        if abs(change) < self.trend_stable_delta:
            direction = TrendDirection.STABLE
        elif change > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING

        confidence = min(1.0, abs(change) / 0.2) * 0.6 + min(1.0, n / 30) * 0.4
        verb = "increased" if change >= 0 else "decreased"

        return UtilizationTrend(
            direction=direction,
            change=change,
            confidence=confidence,
            description=f"Utilization {verb} by {format_percent(abs(change))} over the period",
        )

    def analyze_rightsizing(
        self,
        classification: UtilizationClassification,
        resource_cost: NormalizedResourceCost,
    ) -> RightsizingAnalysis:
        status = classification.status

        if status == UtilizationStatus.INSUFFICIENT_DATA:
            return RightsizingAnalysis.no_action("Insufficient utilization data")
        if status == UtilizationStatus.OPTIMIZED:
            return RightsizingAnalysis.no_action("Resource is well-optimized")

        current_vcpu = resource_cost.vcpu
        current_memory = resource_cost.memory_gb
        current_config = (
            format_config(current_vcpu, current_memory)
            if current_vcpu is not None and current_memory is not None
            else None
        )

        if status == UtilizationStatus.IDLE:
            return RightsizingAnalysis(
                action_recommended=True,
                action=RightsizingAction.DELETE_OR_STOP,
                current_config=current_config,
                estimated_monthly_savings=resource_cost.avg_daily_cost * 30,
                reasoning="Resource is idle and can be deleted or stopped",
            )

        if current_vcpu is None and current_memory is None:
            return RightsizingAnalysis.no_action("Resource specifications not available")

        if status == UtilizationStatus.UNDERUTILIZED:
            avg_cpu = classification.avg_cpu_utilization
            reduction_factor = max(0.5, avg_cpu * 2) if avg_cpu is not None else 0.5
            recommended_vcpu = max(1, math.ceil(current_vcpu * reduction_factor)) if current_vcpu is not None else 1
            recommended_memory = max(1.0, current_memory * reduction_factor) if current_memory is not None else 1.0

            return RightsizingAnalysis(
                action_recommended=True,
                action=RightsizingAction.DOWNSIZE,
                current_config=current_config,
                recommended_config=format_config(recommended_vcpu, recommended_memory),
                recommended_vcpu=recommended_vcpu,
                recommended_memory_gb=recommended_memory,
                reduction_factor=reduction_factor,
                estimated_monthly_savings=resource_cost.avg_daily_cost * 30 * (1 - reduction_factor),
                reasoning=f"Resource is underutilized at {format_percent(avg_cpu)} CPU",
            )

        # OVERUTILIZED: upsizing costs more, so no savings are claimed
        recommended_vcpu = current_vcpu * 2 if current_vcpu is not None else 4
        recommended_memory = current_memory * 2 if current_memory is not None else 8.0
        return RightsizingAnalysis(
            action_recommended=True,
            action=RightsizingAction.UPSIZE,
            current_config=current_config,
            recommended_config=format_config(recommended_vcpu, recommended_memory),
            recommended_vcpu=recommended_vcpu,
            recommended_memory_gb=recommended_memory,
            estimated_monthly_savings=0.0,
            reasoning="Resource is overutilized and may experience performance issues",
        )
