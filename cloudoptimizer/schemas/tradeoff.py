"""
Tradeoff scoring schemas used when ranking alternative SKUs.
"""

from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.tradeoff import AlternativeCategory


class TradeoffScore(BaseModel):
    """Output of a single dimension scorer."""
    score: float = Field(..., ge=0.0, le=1.0)
    explanation: str
    current_value: Optional[str] = None
    alternative_value: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)

    @classmethod
    def unknown(cls, reason: str) -> "TradeoffScore":
        """Neutral score with zero confidence for data that could not be obtained."""
        return cls(score=0.5, explanation=reason, confidence=0.0)

    @property
    def is_unknown(self) -> bool:
        return self.confidence == 0.0


class TradeoffDirection(str, Enum):
    IMPROVEMENT = "improvement"
    NEUTRAL = "neutral"
    DEGRADATION = "degradation"

    @classmethod
    def from_score(cls, score: float, higher_is_better: bool) -> "TradeoffDirection":
        if higher_is_better:
            if score >= 0.7:
                return cls.IMPROVEMENT
            if score <= 0.4:
                return cls.DEGRADATION
        else:
            if score <= 0.3:
                return cls.IMPROVEMENT
            if score >= 0.6:
                return cls.DEGRADATION
        return cls.NEUTRAL


class DimensionScore(BaseModel):
    dimension: str
    display_name: str
    score: float
    weight: float
    direction: TradeoffDirection
    explanation: str
    confidence: float
    current_value: Optional[str] = None
    alternative_value: Optional[str] = None


class CurrentResource(BaseModel):
    provider: CloudProvider
    resource_id: str
    sku: str
    region: Optional[str] = None
    resource_type: ResourceType = ResourceType.UNKNOWN
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    hourly_price: Optional[float] = None
    monthly_cost: Optional[float] = None


class RankedAlternative(BaseModel):
    alternative_id: UUID
    sku: str
    provider: CloudProvider
    category: AlternativeCategory
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    monthly_cost: Optional[float] = None
    estimated_monthly_savings: float = 0.0
    savings_percentage: float = 0.0
    overall_score: float
    dimension_scores: List[DimensionScore] = Field(default_factory=list)


class PreferencesView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    minimum_savings_threshold: float
    include_multi_cloud: bool
    minimum_confidence: float
    auto_dismiss_implemented: bool
    dimension_weights: Optional[Dict[str, float]] = None


class PreferencesUpdate(BaseModel):
    minimum_savings_threshold: Optional[float] = Field(None, ge=0.0)
    include_multi_cloud: Optional[bool] = None
    minimum_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    auto_dismiss_implemented: Optional[bool] = None
    dimension_weights: Optional[Dict[str, float]] = None


class ComparisonResult(BaseModel):
    current_resource: CurrentResource
    ranked_alternatives: List[RankedAlternative] = Field(default_factory=list)
    preferences: PreferencesView
