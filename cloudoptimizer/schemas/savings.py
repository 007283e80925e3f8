"""
Savings tracking schemas.
"""

from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field

from cloudoptimizer.models.recommendation import ValidationStatus


class ValidationOutcome(str, Enum):
    """Result of one validation attempt. DEFERRED means retry on the next run."""
    VALIDATED = "VALIDATED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    DEFERRED = "DEFERRED"

    @property
    def validation_status(self) -> Optional[ValidationStatus]:
        if self == ValidationOutcome.DEFERRED:
            return None
        return ValidationStatus(self.value)


class ValidationRunSummary(BaseModel):
    candidates: int = 0
    validated: int = 0
    partial: int = 0
    failed: int = 0
    deferred: int = 0
    errors: int = 0


class SavingsMetrics(BaseModel):
    """Aggregate realized vs expected savings for a tenant."""
    tenant_id: str
    total_expected_savings: float = 0.0
    total_validated_savings: float = 0.0
    implemented_count: int = 0
    validated_count: int = 0
    validation_success_rate: float = Field(0.0, description="Percentage of implemented recommendations that validated")


class ImplementedRecommendationView(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    recommendation_id: UUID
    resource_id: str
    summary: Optional[str] = None
    expected_monthly_savings: float
    actual_monthly_savings: Optional[float] = None
    validation_status: ValidationStatus
    validation_notes: Optional[str] = None
