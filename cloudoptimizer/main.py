import asyncio
import signal

import structlog

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.logging import setup_logging
from cloudoptimizer.db.session import async_session_maker, init_db
from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.services.adapters.mock import MockCostDataSource
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.scheduler import SchedulerOrchestrator
from cloudoptimizer.services.tradeoff.seed import seed_reference_data

# Configure logging
setup_logging()

logger = structlog.get_logger()


def build_registry() -> DataSourceRegistry:
    """
    Local development wiring: one deterministic mock source per provider.
    Deployments register real provider sources on the same registry.
    """
    return DataSourceRegistry(MockCostDataSource(provider) for provider in CloudProvider)


async def bootstrap() -> DataSourceRegistry:
    settings = get_settings()
    logger.info("bootstrap_started", app=settings.APP_NAME, version=settings.VERSION)

    await init_db()
    async with async_session_maker() as db:
        await seed_reference_data(db)

    return build_registry()


async def run() -> None:
    settings = get_settings()
    registry = await bootstrap()

    if not settings.SCHEDULER_ENABLED:
        logger.info("scheduler_disabled")
        return

    scheduler = SchedulerOrchestrator(async_session_maker, registry)
    scheduler.start()
    logger.info("scheduler_started", jobs=scheduler.get_status()["jobs"])

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await stop_event.wait()

    logger.info("shutting_down", app=settings.APP_NAME)
    await scheduler.stop()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
