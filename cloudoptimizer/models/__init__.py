from cloudoptimizer.models.cloud import CloudProvider, ResourceType, CostRecord
from cloudoptimizer.models.recommendation import (
    Recommendation,
    ImplementedRecommendation,
    RecommendationAction,
    RecommendationStatus,
    RiskLevel,
    ValidationStatus,
)
from cloudoptimizer.models.tradeoff import (
    AlternativeCategory,
    ResourceAlternative,
    TradeoffDimension,
    AlternativeTradeoffScore,
    TenantPreferences,
)

__all__ = [
    "CloudProvider", "ResourceType", "CostRecord",
    "Recommendation", "ImplementedRecommendation", "RecommendationAction",
    "RecommendationStatus", "RiskLevel", "ValidationStatus",
    "AlternativeCategory", "ResourceAlternative", "TradeoffDimension",
    "AlternativeTradeoffScore", "TenantPreferences",
]
