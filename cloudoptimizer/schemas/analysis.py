"""
Analysis result schemas: forecasts, utilization classification, rightsizing and
the per-resource analysis result returned to callers.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.recommendation import (
    RecommendationAction,
    RecommendationStatus,
    RiskLevel,
)


class ForecastResult(BaseModel):
    success: bool
    monthly_cost_forecast: float = 0.0
    daily_forecasts: List[float] = Field(default_factory=list)
    confidence: float = 0.0
    lower_bound: float = 0.0
    upper_bound: float = 0.0
    model_used: str = "none"

    @classmethod
    def insufficient_data(cls) -> "ForecastResult":
        return cls(success=False, model_used="none")


class AnomalyType(str, Enum):
    SPIKE = "SPIKE"
    DROP = "DROP"


class AnomalyPoint(BaseModel):
    date: date
    value: float
    expected_value: float
    z_score: float
    severity: float
    anomaly_type: AnomalyType


class ForecastWithAnomalies(BaseModel):
    forecast: ForecastResult
    anomalies: List[AnomalyPoint] = Field(default_factory=list)


class UtilizationStatus(str, Enum):
    IDLE = "IDLE"
    UNDERUTILIZED = "UNDERUTILIZED"
    OPTIMIZED = "OPTIMIZED"
    OVERUTILIZED = "OVERUTILIZED"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


class UtilizationClassification(BaseModel):
    status: UtilizationStatus
    confidence: float
    avg_cpu_utilization: Optional[float] = None
    max_cpu_utilization: Optional[float] = None
    avg_memory_utilization: Optional[float] = None
    max_memory_utilization: Optional[float] = None
    max_consecutive_idle_days: int = 0
    data_points: int = 0
    reasoning: str = ""

    @classmethod
    def insufficient(cls, data_points: int, reasoning: str) -> "UtilizationClassification":
        return cls(
            status=UtilizationStatus.INSUFFICIENT_DATA,
            confidence=0.0,
            data_points=data_points,
            reasoning=reasoning,
        )


class TrendDirection(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"
    UNKNOWN = "UNKNOWN"


class UtilizationTrend(BaseModel):
    direction: TrendDirection
    change: float = 0.0
    confidence: float = 0.0
    description: str = ""


class RightsizingAction(str, Enum):
    DELETE_OR_STOP = "DELETE_OR_STOP"
    DOWNSIZE = "DOWNSIZE"
    UPSIZE = "UPSIZE"

    def to_recommendation_action(self) -> RecommendationAction:
        return {
            RightsizingAction.DELETE_OR_STOP: RecommendationAction.DELETE_RESOURCE,
            RightsizingAction.DOWNSIZE: RecommendationAction.DOWNSIZE_INSTANCE,
            RightsizingAction.UPSIZE: RecommendationAction.UPSIZE_INSTANCE,
        }[self]


class RightsizingAnalysis(BaseModel):
    action_recommended: bool
    action: Optional[RightsizingAction] = None
    current_config: Optional[str] = None
    recommended_config: Optional[str] = None
    recommended_vcpu: Optional[int] = None
    recommended_memory_gb: Optional[float] = None
    reduction_factor: Optional[float] = None
    estimated_monthly_savings: float = 0.0
    reasoning: str = ""

    @classmethod
    def no_action(cls, reasoning: str) -> "RightsizingAnalysis":
        return cls(action_recommended=False, reasoning=reasoning)


class DetectedConfig(BaseModel):
    """Resource configuration observed by the client (e.g. the browser extension)."""
    sku: Optional[str] = None
    region: Optional[str] = None
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    resource_type: Optional[ResourceType] = None
    resource_name: Optional[str] = None


class AnalysisRequest(BaseModel):
    detected_config: Optional[DetectedConfig] = None
    force_refresh: bool = False


class RecommendationView(BaseModel):
    """Read model of a recommendation. Unpersisted hints have no id or status."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    action: RecommendationAction
    summary: str
    details: Optional[str] = None
    current_config: Optional[str] = None
    suggested_config: Optional[str] = None
    estimated_monthly_savings: float = 0.0
    savings_percentage: float = 0.0
    confidence: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW
    status: Optional[RecommendationStatus] = None
    generated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class AnalysisResult(BaseModel):
    success: bool
    resource_id: str
    resource_name: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    estimated_monthly_cost: float = 0.0
    forecast_confidence: float = 0.0
    utilization_status: UtilizationStatus = UtilizationStatus.INSUFFICIENT_DATA
    avg_cpu_utilization: Optional[float] = None
    recommendations: List[RecommendationView] = Field(default_factory=list)
    message: Optional[str] = None
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def no_data(cls, resource_id: str) -> "AnalysisResult":
        return cls(
            success=False,
            resource_id=resource_id,
            message="No cost data available for this resource",
        )

    @classmethod
    def error(cls, resource_id: str, message: str) -> "AnalysisResult":
        return cls(success=False, resource_id=resource_id, message=message)


class RecommendationDraft(BaseModel):
    """A generated recommendation before it is written through the ACTIVE-row upsert."""
    tenant_id: str
    provider: CloudProvider
    resource_id: str
    resource_name: Optional[str] = None
    resource_type: ResourceType = ResourceType.UNKNOWN
    action: RecommendationAction
    summary: str
    details: Optional[str] = None
    current_config: Optional[str] = None
    suggested_config: Optional[str] = None
    estimated_monthly_savings: float = Field(0.0, ge=0.0)
    savings_percentage: float = 0.0
    confidence: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel = RiskLevel.LOW
