"""
Recommendation Engine

Turns a resource's normalized cost history into actionable recommendations:
1. Summarize the lookback window (CostNormalizer)
2. Forecast the next month (ForecastEngine)
3. Classify utilization and derive rightsizing (UtilizationClassifier)
4. Apply the emission rules (rightsizing, reservation, scheduling)
5. Write each recommendation through the ACTIVE-row upsert

Resources without history but with a client-detected configuration get a
low-confidence sizing hint that is returned, never persisted.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.exceptions import InvalidResourceError, UnknownProviderError, UpstreamUnavailableError
from cloudoptimizer.core.metrics import ANALYSIS_DURATION, RECOMMENDATIONS_GENERATED
from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.recommendation import RecommendationAction, RiskLevel
from cloudoptimizer.schemas.analysis import (
    AnalysisRequest,
    AnalysisResult,
    DetectedConfig,
    ForecastResult,
    RecommendationDraft,
    RecommendationView,
    RightsizingAnalysis,
    UtilizationClassification,
    UtilizationStatus,
)
from cloudoptimizer.schemas.costs import NormalizedResourceCost
from cloudoptimizer.services.adapters.base import CostDataSource
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.analysis.forecast_backend import build_forecast_backend
from cloudoptimizer.services.analysis.forecaster import ForecastEngine
from cloudoptimizer.services.analysis.utilization import UtilizationClassifier, format_config
from cloudoptimizer.services.normalization.normalizer import CostNormalizer
from cloudoptimizer.services.recommendations.persistence import RecommendationRepository

logger = structlog.get_logger()

MAX_RESOURCE_ID_LENGTH = 512
NON_PRODUCTION_MARKERS = ("dev", "test", "staging", "qa", "sandbox", "nonprod")


def describe_config(vcpu: Optional[int], memory_gb: Optional[float]) -> Optional[str]:
    if vcpu is not None and memory_gb is not None:
        return format_config(vcpu, memory_gb)
    if vcpu is not None:
        return f"{vcpu} vCPU"
    if memory_gb is not None:
        return f"{memory_gb:.0f} GB"
    return None


def is_likely_non_production(resource_id: str, resource_name: Optional[str]) -> bool:
    haystack = f"{resource_id} {resource_name or ''}".lower()
    return any(marker in haystack for marker in NON_PRODUCTION_MARKERS)


def validate_resource_id(resource_id: str) -> str:
    if resource_id is None or not resource_id.strip():
        raise InvalidResourceError("Resource id must not be blank")
    if len(resource_id) > MAX_RESOURCE_ID_LENGTH:
        raise InvalidResourceError(
            f"Resource id exceeds {MAX_RESOURCE_ID_LENGTH} characters",
            details={"length": len(resource_id)},
        )
    return resource_id.strip()


class RecommendationEngine:
    def __init__(
        self,
        db: AsyncSession,
        registry: DataSourceRegistry,
        normalizer: Optional[CostNormalizer] = None,
        forecaster: Optional[ForecastEngine] = None,
        classifier: Optional[UtilizationClassifier] = None,
        repository: Optional[RecommendationRepository] = None,
    ):
        self.db = db
        self.registry = registry
        self.normalizer = normalizer or CostNormalizer(db, registry)
        self.forecaster = forecaster or ForecastEngine(backend=build_forecast_backend())
        self.classifier = classifier or UtilizationClassifier()
        self.repository = repository or RecommendationRepository(db)
        self.settings = get_settings()

    async def analyze_resource(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        request: Optional[AnalysisRequest] = None,
        as_of: Optional[date] = None,
    ) -> AnalysisResult:
        """
        Analyze one resource and persist what it recommends.

        Raises UnknownProviderError when no data source serves the provider and
        InvalidResourceError for a blank or oversized resource id. Data problems
        come back as an unsuccessful AnalysisResult with a message.
        """
        resource_id = validate_resource_id(resource_id)
        try:
            provider = CloudProvider.from_string(provider)
        except ValueError:
            raise UnknownProviderError(str(provider))
        source = self.registry.get(provider)
        request = request or AnalysisRequest()
        as_of = as_of or datetime.now(timezone.utc).date()

        with ANALYSIS_DURATION.time():
            try:
                return await self._analyze(tenant_id, provider, resource_id, source, request, as_of)
            except UpstreamUnavailableError as e:
                await self.db.rollback()
                logger.error("resource_analysis_failed",
                             tenant_id=tenant_id,
                             provider=provider.value,
                             resource_id=resource_id,
                             error=e.message)
                return AnalysisResult.error(resource_id, f"Analysis failed: {e.message}")

    async def _analyze(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        source: CostDataSource,
        request: AnalysisRequest,
        as_of: date,
    ) -> AnalysisResult:
        lookback = self.settings.ANALYSIS_LOOKBACK_DAYS
        summary = await self.normalizer.get_resource_cost_summary(
            tenant_id, provider, resource_id, as_of - timedelta(days=lookback), as_of
        )

        if summary is None:
            if request.detected_config is not None:
                return await self._analyze_without_history(
                    tenant_id, provider, resource_id, source, request.detected_config
                )
            logger.info("no_cost_data_for_resource", tenant_id=tenant_id, resource_id=resource_id)
            return AnalysisResult.no_data(resource_id)

        series = await self.normalizer.get_cost_time_series(
            tenant_id, provider, resource_id, days_back=lookback, as_of=as_of
        )
        forecast = await self.forecaster.forecast(series, self.settings.ANALYSIS_FORECAST_HORIZON_DAYS)
        classification = self.classifier.classify(series)
        rightsizing = self.classifier.analyze_rightsizing(classification, summary)

        drafts = self._generate(summary, forecast, classification, rightsizing)
        now = datetime.now(timezone.utc)
        rows = [await self.repository.upsert_active(draft, now) for draft in drafts]
        await self.db.commit()

        for draft in drafts:
            RECOMMENDATIONS_GENERATED.labels(action=draft.action.value).inc()

        logger.info("resource_analyzed",
                    tenant_id=tenant_id,
                    provider=provider.value,
                    resource_id=resource_id,
                    status=classification.status.value,
                    forecast_model=forecast.model_used,
                    recommendations=len(rows))

        monthly_cost = forecast.monthly_cost_forecast if forecast.success else summary.avg_daily_cost * 30
        return AnalysisResult(
            success=True,
            resource_id=resource_id,
            resource_name=summary.display_name,
            resource_type=summary.resource_type,
            estimated_monthly_cost=round(monthly_cost, 2),
            forecast_confidence=forecast.confidence,
            utilization_status=classification.status,
            avg_cpu_utilization=classification.avg_cpu_utilization,
            recommendations=[RecommendationView.model_validate(row) for row in rows],
        )

    def _generate(
        self,
        summary: NormalizedResourceCost,
        forecast: ForecastResult,
        classification: UtilizationClassification,
        rightsizing: RightsizingAnalysis,
    ) -> List[RecommendationDraft]:
        drafts: List[RecommendationDraft] = []
        min_savings = self.settings.MIN_SAVINGS_THRESHOLD
        current_config = describe_config(summary.vcpu, summary.memory_gb)

        if (
            rightsizing.action_recommended
            and rightsizing.estimated_monthly_savings >= min_savings
            and classification.confidence >= self.settings.MIN_CONFIDENCE_THRESHOLD
        ):
            action = rightsizing.action.to_recommendation_action()
            drafts.append(self._draft(
                summary,
                action,
                summary_text=rightsizing.reasoning,
                details=self._rightsizing_details(summary, classification, rightsizing),
                current_config=current_config,
                suggested_config=rightsizing.recommended_config,
                savings=rightsizing.estimated_monthly_savings,
                savings_percentage=self._savings_percentage(rightsizing.estimated_monthly_savings, summary),
                confidence=classification.confidence,
            ))

        if (
            classification.status == UtilizationStatus.OPTIMIZED
            and forecast.success
            and forecast.confidence >= self.settings.RESERVATION_MIN_FORECAST_CONFIDENCE
        ):
            rate = self.settings.RESERVATION_SAVINGS_RATE
            savings = forecast.monthly_cost_forecast * rate
            if savings >= min_savings:
                drafts.append(self._draft(
                    summary,
                    RecommendationAction.PURCHASE_RESERVATION,
                    summary_text="Consider reserved instance for stable workload",
                    details=(
                        "Resource shows stable utilization patterns. Reserved instances typically "
                        "offer 30-70% savings for 1-3 year commitments."
                    ),
                    current_config=current_config,
                    savings=savings,
                    savings_percentage=rate * 100,
                    confidence=forecast.confidence,
                ))

        if (
            is_likely_non_production(summary.resource_id, summary.resource_name)
            and classification.status != UtilizationStatus.OVERUTILIZED
        ):
            rate = self.settings.SCHEDULING_SAVINGS_RATE
            savings = summary.avg_daily_cost * 30 * rate
            if savings >= min_savings:
                drafts.append(self._draft(
                    summary,
                    RecommendationAction.SCHEDULE_SHUTDOWN,
                    summary_text="Schedule automatic shutdown during off-hours",
                    details=(
                        "Resource appears to be non-production. Consider scheduling shutdown "
                        "during nights and weekends."
                    ),
                    current_config=current_config,
                    savings=savings,
                    savings_percentage=rate * 100,
                    confidence=0.7,
                ))

        return drafts

    @staticmethod
    def _draft(
        summary: NormalizedResourceCost,
        action: RecommendationAction,
        summary_text: str,
        details: str,
        savings: float,
        savings_percentage: float,
        confidence: float,
        current_config: Optional[str] = None,
        suggested_config: Optional[str] = None,
    ) -> RecommendationDraft:
        return RecommendationDraft(
            tenant_id=summary.tenant_id,
            provider=summary.provider,
            resource_id=summary.resource_id,
            resource_name=summary.resource_name,
            resource_type=summary.resource_type,
            action=action,
            summary=summary_text,
            details=details,
            current_config=current_config,
            suggested_config=suggested_config,
            estimated_monthly_savings=max(0.0, savings),
            savings_percentage=savings_percentage,
            confidence=min(1.0, max(0.0, confidence)),
            risk_level=action.risk_level,
        )

    @staticmethod
    def _savings_percentage(savings: float, summary: NormalizedResourceCost) -> float:
        monthly_cost = summary.avg_daily_cost * 30
        if monthly_cost <= 0:
            return 0.0
        return savings / monthly_cost * 100

    @staticmethod
    def _rightsizing_details(
        summary: NormalizedResourceCost,
        classification: UtilizationClassification,
        rightsizing: RightsizingAnalysis,
    ) -> str:
        lines = [
            f"Analysis based on {summary.data_point_count} days of data.",
            f"Current utilization: {classification.reasoning}",
            f"Current daily cost: ${summary.avg_daily_cost:.2f}",
        ]
        if rightsizing.recommended_config:
            lines.append(f"Recommended configuration: {rightsizing.recommended_config}")
        lines.append(f"Estimated monthly savings: ${rightsizing.estimated_monthly_savings:.2f}")
        return "\n".join(lines)

    async def _analyze_without_history(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        source: CostDataSource,
        detected: DetectedConfig,
    ) -> AnalysisResult:
        try:
            metadata = await source.fetch_resource_metadata(tenant_id, resource_id)
        except UpstreamUnavailableError as e:
            logger.warning("resource_metadata_unavailable", resource_id=resource_id, error=e.message)
            metadata = None

        sku = detected.sku or (metadata.sku if metadata else None)
        region = detected.region or (metadata.region if metadata else None)
        resource_type = detected.resource_type or (metadata.resource_type if metadata else ResourceType.UNKNOWN)
        resource_name = detected.resource_name or (metadata.name if metadata else None)
        vcpu = detected.vcpu if detected.vcpu is not None else (metadata.vcpu if metadata else None)
        memory_gb = detected.memory_gb if detected.memory_gb is not None else (metadata.memory_gb if metadata else None)

        hourly_price = None
        if sku:
            try:
                hourly_price = await source.get_sku_pricing(sku, region)
            except UpstreamUnavailableError as e:
                # Cost stays unknown; the sizing hint does not depend on it
                logger.warning("sku_pricing_unavailable", sku=sku, region=region, error=e.message)
        monthly_cost = (hourly_price or 0.0) * 24 * 30

        recommendations: List[RecommendationView] = []
        if resource_type.is_optimizable:
            recommendations.append(RecommendationView(
                action=RecommendationAction.DOWNSIZE_INSTANCE,
                summary="Review resource sizing",
                details="No utilization data available. Consider reviewing if current size is appropriate.",
                current_config=describe_config(vcpu, memory_gb) or sku,
                estimated_monthly_savings=0.0,
                confidence=self.settings.NO_HISTORY_CONFIDENCE,
                risk_level=RiskLevel.LOW,
            ))

        logger.info("resource_analyzed_without_history",
                    tenant_id=tenant_id,
                    provider=provider.value,
                    resource_id=resource_id,
                    sku=sku,
                    hints=len(recommendations))

        return AnalysisResult(
            success=True,
            resource_id=resource_id,
            resource_name=resource_name or resource_id,
            resource_type=resource_type,
            estimated_monthly_cost=round(monthly_cost, 2),
            forecast_confidence=self.settings.NO_HISTORY_CONFIDENCE,
            utilization_status=UtilizationStatus.INSUFFICIENT_DATA,
            recommendations=recommendations,
            message="Limited analysis - no historical data available",
        )
