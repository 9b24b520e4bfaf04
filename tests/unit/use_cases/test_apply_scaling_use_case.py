"""
Unit tests for Apply Scaling and Reset Tenant Usage Use Cases
"""

import pytest
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from crawlgate.app.services.capacity_planner import CapacityPlanner
from crawlgate.app.services.queue_orchestrator import QueueReconfigurationReport
from crawlgate.app.use_cases.admin import ResetTenantUsageUseCase
from crawlgate.app.use_cases.scaling import ApplyScalingUseCase, ScalingChanges
from crawlgate.domain.values.capacity import ScalingConfig
from crawlgate.domain.values.tenancy import LimitsUpdateReport, TenantUsage


@pytest.fixture
def registry():
    registry = MagicMock()
    registry.update_all_tenant_limits = AsyncMock(return_value=LimitsUpdateReport(updated=3))
    return registry


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    orchestrator.update_queue_configurations = AsyncMock(
        return_value=QueueReconfigurationReport(checked=2, stale=["global:web-scraping"])
    )
    return orchestrator


@pytest.mark.asyncio
async def test_apply_scaling_success(registry, orchestrator):
    """Test a new user budget is planned, swapped in and pushed to tenants"""
    # Arrange
    use_planner = MagicMock()
    use_case = ApplyScalingUseCase(CapacityPlanner(ScalingConfig()), registry, orchestrator, use_planner)

    # Act
    result = await use_case.execute(ScalingChanges(max_users=800, memory_per_worker_mb=64))

    # Assert
    assert result.is_ok()
    response = result.value
    assert response.config.max_users == 800
    assert response.config.queue_size_per_user == 2
    assert response.allocation.total_workers == 80
    assert response.tenants_updated == 3
    assert response.stale_queues == ["global:web-scraping"]
    assert response.environment["MAX_USERS"] == "800"

    new_planner = use_planner.call_args[0][0]
    assert new_planner.config.max_users == 800
    registry.update_all_tenant_limits.assert_awaited_once()
    orchestrator.update_queue_configurations.assert_awaited_once()


@pytest.mark.asyncio
async def test_apply_scaling_invalid_config(registry, orchestrator):
    """Test an over-budget plan is rejected and nothing is swapped"""
    # Arrange
    use_planner = MagicMock()
    use_case = ApplyScalingUseCase(CapacityPlanner(ScalingConfig()), registry, orchestrator, use_planner)

    # Act
    result = await use_case.execute(ScalingChanges(max_users=1000))

    # Assert
    assert result.is_err()
    assert result.error.code == "INVALID_SCALING_CONFIG"
    assert "Total memory allocation 12800MB exceeds 8192MB limit" in result.error.details["errors"]
    use_planner.assert_not_called()
    registry.update_all_tenant_limits.assert_not_called()


@pytest.mark.asyncio
async def test_reset_tenant_usage_success(mock_uow):
    """Test the monthly counter is zeroed and audited"""
    # Arrange
    tenant_id = uuid4()
    before = MagicMock(usage=TenantUsage(monthly_crawls=42))
    after = MagicMock(usage=TenantUsage(monthly_crawls=0, last_reset_date=datetime.now(UTC)))
    registry = MagicMock()
    registry.get = AsyncMock(side_effect=[before, after])
    registry.reset_monthly_usage = AsyncMock(return_value=True)
    mock_uow.audit_logs.create = AsyncMock()

    # Act
    result = await ResetTenantUsageUseCase(mock_uow, registry).execute(tenant_id)

    # Assert
    assert result.is_ok()
    assert result.value.monthly_crawls == 0
    assert result.value.last_reset_date is not None
    audit_call = mock_uow.audit_logs.create.call_args[0][0]
    assert audit_call.action == "usage_reset"
    assert audit_call.event_metadata == {"previous_monthly_crawls": 42}
    mock_uow.commit.assert_called_once()


@pytest.mark.asyncio
async def test_reset_tenant_usage_not_found(mock_uow):
    """Test reset fails for an unknown tenant"""
    # Arrange
    registry = MagicMock()
    registry.get = AsyncMock(return_value=None)
    registry.reset_monthly_usage = AsyncMock()

    # Act
    result = await ResetTenantUsageUseCase(mock_uow, registry).execute(uuid4())

    # Assert
    assert result.is_err()
    assert result.error.code == "TENANT_NOT_FOUND"
    registry.reset_monthly_usage.assert_not_called()
