"""
Unit tests for Suspend/Restore/Cancel Tenant Use Cases
Tests business logic in isolation with mocked dependencies.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from crawlgate.app.use_cases.admin import (
    CancelTenantUseCase,
    RestoreTenantUseCase,
    SuspendTenantUseCase,
)
from crawlgate.domain.entities import Tenant
from crawlgate.domain.entities.enums import TenantStatus


def make_tenant(status: TenantStatus) -> Tenant:
    return Tenant(id=uuid4(), name="Test Corp", slug="test-corp", plan_id=uuid4(), status=status)


@pytest.fixture
def registry():
    return MagicMock()


@pytest.mark.asyncio
async def test_suspend_tenant_success(mock_uow, registry):
    """Test successful tenant suspension"""
    # Arrange
    tenant = make_tenant(TenantStatus.active)
    mock_uow.tenants.get_by_id = AsyncMock(return_value=tenant)
    mock_uow.tenants.update = AsyncMock(return_value=tenant)
    mock_uow.audit_logs.create = AsyncMock()

    # Act
    use_case = SuspendTenantUseCase(mock_uow, registry)
    result = await use_case.execute(tenant.id)

    # Assert
    assert result.is_ok()
    response = result.value
    assert response.status == TenantStatus.suspended
    assert response.previous_status == TenantStatus.active

    # Verify tenant status updated
    assert tenant.status == TenantStatus.suspended
    mock_uow.tenants.update.assert_called_once_with(tenant)

    # Verify audit log created
    mock_uow.audit_logs.create.assert_called_once()
    audit_call = mock_uow.audit_logs.create.call_args[0][0]
    assert audit_call.action == "tenant_suspended"
    assert audit_call.event_metadata["previous_status"] == "active"

    # Verify transaction committed and cache dropped
    mock_uow.commit.assert_called_once()
    registry.invalidate.assert_called_once_with(tenant.id)


@pytest.mark.asyncio
async def test_suspend_tenant_already_suspended(mock_uow, registry):
    """Suspending a suspended tenant succeeds without a write"""
    # Arrange
    tenant = make_tenant(TenantStatus.suspended)
    mock_uow.tenants.get_by_id = AsyncMock(return_value=tenant)
    mock_uow.tenants.update = AsyncMock()

    # Act
    result = await SuspendTenantUseCase(mock_uow, registry).execute(tenant.id)

    # Assert
    assert result.is_ok()
    assert result.value.status == TenantStatus.suspended
    mock_uow.tenants.update.assert_not_called()
    mock_uow.commit.assert_not_called()


@pytest.mark.asyncio
async def test_suspend_tenant_not_found(mock_uow, registry):
    """Test suspension fails when tenant doesn't exist"""
    # Arrange
    mock_uow.tenants.get_by_id = AsyncMock(return_value=None)

    # Act
    result = await SuspendTenantUseCase(mock_uow, registry).execute(uuid4())

    # Assert
    assert result.is_err()
    assert result.error.code == "TENANT_NOT_FOUND"
    mock_uow.commit.assert_not_called()


@pytest.mark.asyncio
async def test_suspend_cancelled_tenant_is_rejected(mock_uow, registry):
    """A cancelled tenant cannot be suspended"""
    # Arrange
    tenant = make_tenant(TenantStatus.cancelled)
    mock_uow.tenants.get_by_id = AsyncMock(return_value=tenant)

    # Act
    result = await SuspendTenantUseCase(mock_uow, registry).execute(tenant.id)

    # Assert
    assert result.is_err()
    assert result.error.code == "INVALID_STATUS_TRANSITION"
    assert tenant.status == TenantStatus.cancelled
    registry.invalidate.assert_not_called()


@pytest.mark.asyncio
async def test_restore_tenant_success(mock_uow, registry):
    """Test successful tenant restoration"""
    # Arrange
    tenant = make_tenant(TenantStatus.suspended)
    mock_uow.tenants.get_by_id = AsyncMock(return_value=tenant)
    mock_uow.tenants.update = AsyncMock(return_value=tenant)
    mock_uow.audit_logs.create = AsyncMock()

    # Act
    result = await RestoreTenantUseCase(mock_uow, registry).execute(tenant.id)

    # Assert
    assert result.is_ok()
    assert tenant.status == TenantStatus.active
    audit_call = mock_uow.audit_logs.create.call_args[0][0]
    assert audit_call.action == "tenant_restored"
    mock_uow.commit.assert_called_once()


@pytest.mark.asyncio
async def test_restore_cancelled_tenant_is_rejected(mock_uow, registry):
    """Cancellation is final"""
    # Arrange
    tenant = make_tenant(TenantStatus.cancelled)
    mock_uow.tenants.get_by_id = AsyncMock(return_value=tenant)

    # Act
    result = await RestoreTenantUseCase(mock_uow, registry).execute(tenant.id)

    # Assert
    assert result.is_err()
    assert result.error.code == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [TenantStatus.active, TenantStatus.suspended])
async def test_cancel_tenant_from_any_live_status(mock_uow, registry, status):
    """Both active and suspended tenants can be cancelled"""
    # Arrange
    tenant = make_tenant(status)
    mock_uow.tenants.get_by_id = AsyncMock(return_value=tenant)
    mock_uow.tenants.update = AsyncMock(return_value=tenant)
    mock_uow.audit_logs.create = AsyncMock()

    # Act
    result = await CancelTenantUseCase(mock_uow, registry).execute(tenant.id)

    # Assert
    assert result.is_ok()
    assert result.value.previous_status == status
    assert tenant.status == TenantStatus.cancelled
    assert mock_uow.audit_logs.create.call_args[0][0].action == "tenant_cancelled"
