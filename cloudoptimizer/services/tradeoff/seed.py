"""
Reference data for alternative ranking: the six tradeoff dimensions and a
starter catalogue of alternative SKUs. Each table is seeded only when empty.
"""

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.tradeoff import AlternativeCategory, ResourceAlternative, TradeoffDimension

logger = structlog.get_logger()

# name, display name, description, default weight
DEFAULT_DIMENSIONS = [
    ("cost", "Cost Savings", "Potential cost reduction compared to current configuration", 0.35),
    ("performance", "Performance", "Compute capacity (vCPU, memory) compared to current", 0.25),
    ("availability", "Availability/SLA", "Service level agreement and uptime guarantees", 0.15),
    ("migration_effort", "Migration Effort", "Ease of migration from current to alternative", 0.15),
    ("vendor_lock_in", "Portability", "Ability to move to other providers in the future", 0.05),
    ("environmental_impact", "Sustainability", "Carbon footprint and environmental considerations", 0.05),
]

# provider, current sku, alternative provider, alternative sku, vcpu, memory, hourly price, family, category
DEFAULT_ALTERNATIVES = [
    (CloudProvider.AZURE, "Standard_D4s_v3", CloudProvider.AZURE, "Standard_D2s_v3", 2, 8.0, 0.096, "D-series", AlternativeCategory.DOWNSIZE),
    (CloudProvider.AZURE, "Standard_D4s_v3", CloudProvider.AZURE, "Standard_B2s", 2, 4.0, 0.0416, "B-series", AlternativeCategory.DIFFERENT_FAMILY),
    (CloudProvider.AZURE, "Standard_D4s_v3", CloudProvider.AZURE, "Standard_B1s", 1, 1.0, 0.0104, "B-series", AlternativeCategory.DIFFERENT_FAMILY),
    (CloudProvider.AZURE, "Standard_D4s_v3", CloudProvider.AWS, "m5.large", 2, 8.0, 0.096, "m5", AlternativeCategory.CROSS_CLOUD),
    (CloudProvider.AZURE, "Standard_D2s_v3", CloudProvider.AZURE, "Standard_B2s", 2, 4.0, 0.0416, "B-series", AlternativeCategory.DIFFERENT_FAMILY),
    (CloudProvider.AZURE, "Standard_D2s_v3", CloudProvider.AZURE, "Standard_B1s", 1, 1.0, 0.0104, "B-series", AlternativeCategory.DIFFERENT_FAMILY),
    (CloudProvider.AWS, "m5.xlarge", CloudProvider.AWS, "m5.large", 2, 8.0, 0.096, "m5", AlternativeCategory.DOWNSIZE),
    (CloudProvider.AWS, "m5.xlarge", CloudProvider.AWS, "t3.large", 2, 8.0, 0.0832, "t3", AlternativeCategory.DIFFERENT_FAMILY),
    (CloudProvider.AWS, "m5.xlarge", CloudProvider.AWS, "t3.small", 2, 2.0, 0.0208, "t3", AlternativeCategory.DIFFERENT_FAMILY),
]


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def seed_tradeoff_dimensions(db: AsyncSession) -> int:
    if await _count(db, TradeoffDimension) > 0:
        logger.info("tradeoff_dimensions_exist_skipping_seed")
        return 0

    for order, (name, display_name, description, weight) in enumerate(DEFAULT_DIMENSIONS, start=1):
        db.add(TradeoffDimension(
            name=name,
            display_name=display_name,
            description=description,
            default_weight=weight,
            higher_is_better=True,
            display_order=order,
            is_active=True,
        ))
    await db.commit()

    logger.info("tradeoff_dimensions_seeded", count=len(DEFAULT_DIMENSIONS))
    return len(DEFAULT_DIMENSIONS)


async def seed_resource_alternatives(db: AsyncSession) -> int:
    if await _count(db, ResourceAlternative) > 0:
        logger.info("resource_alternatives_exist_skipping_seed")
        return 0

    for provider, current_sku, alt_provider, alt_sku, vcpu, memory_gb, price, family, category in DEFAULT_ALTERNATIVES:
        db.add(ResourceAlternative(
            provider=provider,
            resource_type=ResourceType.COMPUTE,
            current_sku=current_sku,
            alternative_sku=alt_sku,
            alternative_provider=alt_provider,
            vcpu=vcpu,
            memory_gb=memory_gb,
            estimated_hourly_price=price,
            sku_family=family,
            category=category,
            is_active=True,
        ))
    await db.commit()

    logger.info("resource_alternatives_seeded", count=len(DEFAULT_ALTERNATIVES))
    return len(DEFAULT_ALTERNATIVES)


async def seed_reference_data(db: AsyncSession) -> None:
    await seed_tradeoff_dimensions(db)
    await seed_resource_alternatives(db)
