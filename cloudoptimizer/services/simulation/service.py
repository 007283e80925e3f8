"""
What-if cost simulation.

Estimates the monthly cost impact of a configuration change (SKU swap,
reservation, spot capacity, shutdown schedule, region move) from on-demand
SKU pricing, without touching the resource. Failures come back as error
results, never exceptions.
"""

from typing import Any, Dict, Optional, Tuple, Union

import structlog

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.exceptions import UpstreamUnavailableError
from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.schemas.simulation import (
    ReservationTerm,
    ScheduleType,
    SimulationResult,
    SimulationType,
)
from cloudoptimizer.services.adapters.base import CostDataSource
from cloudoptimizer.services.adapters.registry import DataSourceRegistry

logger = structlog.get_logger()

RESERVATION_DISCOUNTS = {
    ReservationTerm.ONE_YEAR: 0.30,
    ReservationTerm.THREE_YEAR: 0.60,
}
SPOT_DISCOUNT = 0.70

SKU_CONFIG_KEYS = ("sku", "vmSize", "instanceType")


def parse_schedule(value: str) -> ScheduleType:
    normalized = value.strip().lower()
    if normalized in ("business_hours", "business"):
        return ScheduleType.BUSINESS_HOURS
    if normalized in ("weekdays", "weekdays_only"):
        return ScheduleType.WEEKDAYS_ONLY
    return ScheduleType.DEV_HOURS


class CostSimulationService:
    def __init__(self, registry: DataSourceRegistry):
        self.registry = registry
        self.hours_per_month = get_settings().HOURS_PER_MONTH

    def _source(self, provider: Union[CloudProvider, str]) -> Optional[CostDataSource]:
        return self.registry.find(provider)

    async def _monthly_price(
        self,
        source: CostDataSource,
        sku: str,
        region: Optional[str],
    ) -> Tuple[Optional[float], Optional[str]]:
        """(monthly on-demand cost, error message). Exactly one of the two is set."""
        try:
            hourly = await source.get_sku_pricing(sku, region)
        except UpstreamUnavailableError as e:
            logger.warning("simulation_pricing_unavailable", sku=sku, region=region, error=e.message)
            return None, "Pricing data not available"
        if hourly is None:
            return None, f"Unknown SKU: {sku}"
        return hourly * self.hours_per_month, None

    async def simulate_sku_change(
        self,
        tenant_id: str,
        provider: Union[CloudProvider, str],
        resource_id: str,
        current_sku: str,
        target_sku: str,
        region: Optional[str] = None,
    ) -> SimulationResult:
        logger.info("simulating_sku_change", current_sku=current_sku, target_sku=target_sku, region=region)
        source = self._source(provider)
        if source is None:
            return SimulationResult.error(f"Unsupported provider: {_provider_name(provider)}")

        current_monthly, error = await self._monthly_price(source, current_sku, region)
        if error:
            return SimulationResult.error(error)
        target_monthly, error = await self._monthly_price(source, target_sku, region)
        if error:
            if error.startswith("Unknown SKU"):
                error = f"Unknown target SKU: {target_sku}"
            return SimulationResult.error(error)

        savings = current_monthly - target_monthly
        return SimulationResult(
            resource_id=resource_id,
            current_monthly_cost=current_monthly,
            projected_monthly_cost=target_monthly,
            savings_amount=savings,
            savings_percentage=savings / current_monthly * 100 if current_monthly > 0 else 0.0,
            confidence=0.9,
            simulation_type=SimulationType.SKU_CHANGE,
            description=f"Change from {current_sku} to {target_sku}",
        )

    async def simulate_reservation(
        self,
        tenant_id: str,
        provider: Union[CloudProvider, str],
        resource_id: str,
        sku: str,
        region: Optional[str] = None,
        term: ReservationTerm = ReservationTerm.ONE_YEAR,
    ) -> SimulationResult:
        logger.info("simulating_reservation", sku=sku, term=term.value)
        source = self._source(provider)
        if source is None:
            return SimulationResult.error(f"Unsupported provider: {_provider_name(provider)}")

        on_demand, error = await self._monthly_price(source, sku, region)
        if error:
            return SimulationResult.error(error)

        discount = RESERVATION_DISCOUNTS[term]
        reserved = on_demand * (1 - discount)
        return SimulationResult(
            resource_id=resource_id,
            current_monthly_cost=on_demand,
            projected_monthly_cost=reserved,
            savings_amount=on_demand - reserved,
            savings_percentage=discount * 100,
            confidence=0.95,
            simulation_type=SimulationType.RESERVATION,
            description=f"{term.display_name} Reserved Instance for {sku}",
        )

    async def simulate_spot(
        self,
        tenant_id: str,
        provider: Union[CloudProvider, str],
        resource_id: str,
        sku: str,
        region: Optional[str] = None,
    ) -> SimulationResult:
        logger.info("simulating_spot", sku=sku)
        source = self._source(provider)
        if source is None:
            return SimulationResult.error(f"Unsupported provider: {_provider_name(provider)}")

        on_demand, error = await self._monthly_price(source, sku, region)
        if error:
            return SimulationResult.error(error)

        # Spot prices float; use the average discount
        spot = on_demand * (1 - SPOT_DISCOUNT)
        return SimulationResult(
            resource_id=resource_id,
            current_monthly_cost=on_demand,
            projected_monthly_cost=spot,
            savings_amount=on_demand - spot,
            savings_percentage=SPOT_DISCOUNT * 100,
            confidence=0.7,
            simulation_type=SimulationType.SPOT,
            description=f"Spot instance for {sku} (prices may vary)",
        )

    async def simulate_scheduling(
        self,
        tenant_id: str,
        provider: Union[CloudProvider, str],
        resource_id: str,
        sku: str,
        region: Optional[str] = None,
        schedule: ScheduleType = ScheduleType.DEV_HOURS,
    ) -> SimulationResult:
        logger.info("simulating_schedule", sku=sku, schedule=schedule.value)
        source = self._source(provider)
        if source is None:
            return SimulationResult.error(f"Unsupported provider: {_provider_name(provider)}")

        full_time, error = await self._monthly_price(source, sku, region)
        if error:
            return SimulationResult.error(error)

        ratio = schedule.running_hours_ratio
        scheduled = full_time * ratio
        return SimulationResult(
            resource_id=resource_id,
            current_monthly_cost=full_time,
            projected_monthly_cost=scheduled,
            savings_amount=full_time - scheduled,
            savings_percentage=(1 - ratio) * 100,
            confidence=0.85,
            simulation_type=SimulationType.SCHEDULING,
            description=f"{schedule.display_name} schedule: {schedule.description}",
        )

    async def simulate_region_change(
        self,
        tenant_id: str,
        provider: Union[CloudProvider, str],
        resource_id: str,
        sku: str,
        current_region: Optional[str],
        target_region: str,
    ) -> SimulationResult:
        """Same SKU priced in another region of the same provider."""
        logger.info("simulating_region_change", sku=sku, current_region=current_region, target_region=target_region)
        source = self._source(provider)
        if source is None:
            return SimulationResult.error(f"Unsupported provider: {_provider_name(provider)}")

        current_monthly, error = await self._monthly_price(source, sku, current_region)
        if error:
            return SimulationResult.error(error)
        target_monthly, error = await self._monthly_price(source, sku, target_region)
        if error:
            return SimulationResult.error(error)

        savings = current_monthly - target_monthly
        return SimulationResult(
            resource_id=resource_id,
            current_monthly_cost=current_monthly,
            projected_monthly_cost=target_monthly,
            savings_amount=savings,
            savings_percentage=savings / current_monthly * 100 if current_monthly > 0 else 0.0,
            confidence=0.8,
            simulation_type=SimulationType.REGION_CHANGE,
            description=f"Move {sku} from {current_region or 'current region'} to {target_region}",
        )

    async def simulate_config_change(
        self,
        tenant_id: str,
        provider: Union[CloudProvider, str],
        resource_id: str,
        current_sku: str,
        region: Optional[str],
        proposed_config: Optional[Dict[str, Any]],
    ) -> SimulationResult:
        """
        Pick a simulation from a free-form proposed configuration.

        Checked in order: a different SKU (``sku``/``vmSize``/``instanceType``),
        ``reservationTerm``, ``useSpot``, ``schedule``, a different ``region``.
        """
        config = proposed_config or {}

        target_sku = next((str(config[key]) for key in SKU_CONFIG_KEYS if key in config), None)
        if target_sku is not None and target_sku != current_sku:
            return await self.simulate_sku_change(tenant_id, provider, resource_id, current_sku, target_sku, region)

        if "reservationTerm" in config:
            term = ReservationTerm.THREE_YEAR if "3" in str(config["reservationTerm"]) else ReservationTerm.ONE_YEAR
            return await self.simulate_reservation(tenant_id, provider, resource_id, current_sku, region, term)

        if config.get("useSpot") is True:
            return await self.simulate_spot(tenant_id, provider, resource_id, current_sku, region)

        if "schedule" in config:
            schedule = parse_schedule(str(config["schedule"]))
            return await self.simulate_scheduling(tenant_id, provider, resource_id, current_sku, region, schedule)

        target_region = config.get("region")
        if target_region and str(target_region) != region:
            return await self.simulate_region_change(
                tenant_id, provider, resource_id, current_sku, region, str(target_region)
            )

        return SimulationResult.error("Unable to determine simulation type from config")


def _provider_name(provider: Union[CloudProvider, str]) -> str:
    return provider.value if isinstance(provider, CloudProvider) else str(provider)
