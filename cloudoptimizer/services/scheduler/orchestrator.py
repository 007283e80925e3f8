from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import asyncio
from datetime import datetime, timezone
import time
import uuid
import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.recommendations.service import RecommendationService
from cloudoptimizer.services.savings.validator import SavingsValidator
from cloudoptimizer.services.scheduler.metrics import SCHEDULER_JOB_RUNS, SCHEDULER_JOB_DURATION

logger = structlog.get_logger()


class SchedulerOrchestrator:
    """Manages APScheduler and the recurring maintenance jobs."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], registry: DataSourceRegistry):
        self.scheduler = AsyncIOScheduler()
        self.session_maker = session_maker
        self.registry = registry
        self._last_run_success: bool | None = None
        self._last_run_time: str | None = None

    def _begin_job(self, job_name: str) -> float:
        job_id = str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(correlation_id=job_id, job_name=job_name)
        logger.info("scheduler_job_started", job=job_name)
        return time.time()

    def _finish_job(self, job_name: str, start_time: float, success: bool) -> None:
        SCHEDULER_JOB_RUNS.labels(job_name=job_name, status="success" if success else "failure").inc()
        SCHEDULER_JOB_DURATION.labels(job_name=job_name).observe(time.time() - start_time)
        self._last_run_success = success
        self._last_run_time = datetime.now(timezone.utc).isoformat()
        structlog.contextvars.unbind_contextvars("correlation_id", "job_name")

    async def savings_validation_job(self):
        """
        Daily savings validation sweep.
        Per-candidate failures are isolated inside the validator; only a failure
        of the sweep itself is reported as a failed run.
        """
        job_name = "daily_savings_validation"
        start_time = self._begin_job(job_name)
        success = False
        try:
            async with self.session_maker() as db:
                summary = await SavingsValidator(db, self.registry).run_daily_validation()
            logger.info("savings_validation_job_completed", **summary.model_dump())
            success = True
        except Exception as e:
            logger.error("savings_validation_job_failed", job=job_name, error=str(e))
        finally:
            self._finish_job(job_name, start_time, success)

    async def expire_recommendations_job(self):
        """Hourly sweep moving ACTIVE recommendations past their expiry to EXPIRED."""
        job_name = "hourly_recommendation_expiry"
        start_time = self._begin_job(job_name)
        success = False
        try:
            async with self.session_maker() as db:
                expired = await RecommendationService(db).expire_stale()
            logger.info("recommendation_expiry_completed", expired=expired)
            success = True
        except Exception as e:
            logger.error("recommendation_expiry_failed", job=job_name, error=str(e))
        finally:
            self._finish_job(job_name, start_time, success)

    def start(self):
        """Defines cron schedules and starts APScheduler."""
        settings = get_settings()
        # Savings validation: daily, 2AM UTC by default
        self.scheduler.add_job(
            self.savings_validation_job,
            trigger=CronTrigger(
                hour=settings.VALIDATION_CRON_HOUR,
                minute=settings.VALIDATION_CRON_MINUTE,
                timezone="UTC"
            ),
            id="daily_savings_validation",
            replace_existing=True
        )
        # Recommendation expiry: every hour
        self.scheduler.add_job(
            self.expire_recommendations_job,
            trigger=CronTrigger(minute=15, timezone="UTC"),
            id="hourly_recommendation_expiry",
            replace_existing=True
        )
        self.scheduler.start()

    async def stop(self):
        self.scheduler.shutdown(wait=True)
        # AsyncIOScheduler finishes shutting down on the next loop iteration
        await asyncio.sleep(0)

    def get_status(self) -> dict:
        return {
            "running": self.scheduler.running,
            "last_run_success": self._last_run_success,
            "last_run_time": self._last_run_time,
            "jobs": [job.id for job in self.scheduler.get_jobs()]
        }
