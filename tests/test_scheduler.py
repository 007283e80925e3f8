"""
Tests for the scheduler orchestrator jobs and lifecycle.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from cloudoptimizer.schemas.savings import ValidationRunSummary
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.scheduler import SchedulerOrchestrator

ORCHESTRATOR = "cloudoptimizer.services.scheduler.orchestrator"


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def session_maker(mock_db):
    mock_maker = MagicMock()
    mock_maker.return_value.__aenter__.return_value = mock_db
    mock_maker.return_value.__aexit__.return_value = None
    return mock_maker


class TestSavingsValidationJob:
    @pytest.mark.asyncio
    async def test_success_records_status(self, session_maker, mock_db):
        registry = DataSourceRegistry()
        orchestrator = SchedulerOrchestrator(session_maker, registry)

        with patch(f"{ORCHESTRATOR}.SavingsValidator") as mock_validator:
            mock_validator.return_value.run_daily_validation = AsyncMock(
                return_value=ValidationRunSummary(candidates=2, validated=2)
            )
            await orchestrator.savings_validation_job()

        mock_validator.assert_called_once_with(mock_db, registry)
        status = orchestrator.get_status()
        assert status["last_run_success"] is True
        assert status["last_run_time"] is not None

    @pytest.mark.asyncio
    async def test_failure_is_contained(self, session_maker):
        orchestrator = SchedulerOrchestrator(session_maker, DataSourceRegistry())

        with patch(f"{ORCHESTRATOR}.SavingsValidator") as mock_validator:
            mock_validator.return_value.run_daily_validation = AsyncMock(side_effect=RuntimeError("db down"))
            await orchestrator.savings_validation_job()

        assert orchestrator.get_status()["last_run_success"] is False

    @pytest.mark.asyncio
    async def test_correlation_id_bound_for_job_only(self, session_maker):
        orchestrator = SchedulerOrchestrator(session_maker, DataSourceRegistry())
        seen = {}

        async def capture():
            seen.update(structlog.contextvars.get_contextvars())
            return ValidationRunSummary()

        with patch(f"{ORCHESTRATOR}.SavingsValidator") as mock_validator:
            mock_validator.return_value.run_daily_validation = AsyncMock(side_effect=capture)
            await orchestrator.savings_validation_job()

        assert seen["job_name"] == "daily_savings_validation"
        assert seen["correlation_id"]
        assert "correlation_id" not in structlog.contextvars.get_contextvars()


class TestExpiryJob:
    @pytest.mark.asyncio
    async def test_expires_stale_recommendations(self, session_maker, mock_db):
        orchestrator = SchedulerOrchestrator(session_maker, DataSourceRegistry())

        with patch(f"{ORCHESTRATOR}.RecommendationService") as mock_service:
            mock_service.return_value.expire_stale = AsyncMock(return_value=3)
            await orchestrator.expire_recommendations_job()

        mock_service.assert_called_once_with(mock_db)
        mock_service.return_value.expire_stale.assert_awaited_once()
        assert orchestrator.get_status()["last_run_success"] is True

    @pytest.mark.asyncio
    async def test_failure_is_contained(self, session_maker):
        orchestrator = SchedulerOrchestrator(session_maker, DataSourceRegistry())

        with patch(f"{ORCHESTRATOR}.RecommendationService") as mock_service:
            mock_service.return_value.expire_stale = AsyncMock(side_effect=RuntimeError("locked"))
            await orchestrator.expire_recommendations_job()

        assert orchestrator.get_status()["last_run_success"] is False


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, session_maker):
        orchestrator = SchedulerOrchestrator(session_maker, DataSourceRegistry())
        orchestrator.start()
        try:
            status = orchestrator.get_status()
            assert status["running"] is True
            assert set(status["jobs"]) == {"daily_savings_validation", "hourly_recommendation_expiry"}
        finally:
            await orchestrator.stop()

        assert orchestrator.get_status()["running"] is False

    def test_status_before_any_run(self, session_maker):
        status = SchedulerOrchestrator(session_maker, DataSourceRegistry()).get_status()
        assert status["running"] is False
        assert status["last_run_success"] is None
        assert status["jobs"] == []
