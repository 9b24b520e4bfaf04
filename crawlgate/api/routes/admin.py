"""
Admin API Routes - System Administration Endpoints

These endpoints are for operators and internal service integrations
(e.g., billing system). Authentication is via Admin API Key, not user JWTs.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from crawlgate.api.error import ClientError, ServerError
from crawlgate.api.utils.admin_auth import verify_admin_api_key
from crawlgate.app.services.queue_orchestrator import QueueStats
from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.app.services.usage_monitor import (
    PerformanceAnalytics,
    ResourceUtilization,
    SystemMetrics,
    UsageMonitor,
)
from crawlgate.app.use_cases.admin import (
    CancelTenantUseCase,
    ResetTenantUsageResponse,
    ResetTenantUsageUseCase,
    RestoreTenantUseCase,
    SuspendTenantUseCase,
    TenantStatusResponse,
)
from crawlgate.app.use_cases.scaling import (
    ApplyScalingResponse,
    ApplyScalingUseCase,
    ScalingChanges,
)
from crawlgate.app.use_cases.tenants import (
    CreateTenantCommand,
    CreateTenantUseCase,
    TenantResponse,
)
from crawlgate.container import Governance
from crawlgate.depends import get_governance, get_monitor, get_registry, get_unit_of_work
from crawlgate.libs.result import Error

router = APIRouter(
    prefix="/admin", tags=["Admin"], dependencies=[Depends(verify_admin_api_key)]
)


@router.post(
    "/tenants",
    status_code=status.HTTP_201_CREATED,
    response_model=TenantResponse,
)
async def create_tenant(
    command: CreateTenantCommand,
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: TenantRegistry = Depends(get_registry),
):
    """
    Provision a tenant on a subscription tier.

    Requires: X-Admin-API-Key header

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: PLAN_NOT_FOUND
        - 409 Conflict: SLUG_TAKEN
        - 500 Internal Server Error: Server error
    """
    use_case = CreateTenantUseCase(uow, registry)
    result = await use_case.execute(command)

    if result.is_err():
        error = result.error
        if error.code == "SLUG_TAKEN":
            raise ClientError(error, status_code=status.HTTP_409_CONFLICT)
        if error.code == "PLAN_NOT_FOUND":
            raise ClientError(error, status_code=status.HTTP_404_NOT_FOUND)
        raise ServerError(error)

    return result.value


async def _change_status(use_case, tenant_id: UUID) -> TenantStatusResponse:
    result = await use_case.execute(tenant_id)

    if result.is_err():
        error = result.error
        if error.code == "TENANT_NOT_FOUND":
            raise ClientError(error, status_code=status.HTTP_404_NOT_FOUND)
        if error.code == "INVALID_STATUS_TRANSITION":
            raise ClientError(error, status_code=status.HTTP_409_CONFLICT)
        raise ServerError(error)

    return result.value


@router.post(
    "/tenants/{tenant_id}/suspend",
    status_code=status.HTTP_200_OK,
    response_model=TenantStatusResponse,
)
async def suspend_tenant(
    tenant_id: UUID,
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: TenantRegistry = Depends(get_registry),
):
    """
    Suspend Tenant

    Billing system endpoint to suspend a tenant for non-payment. New work is
    refused from the next admission check; running jobs may finish.

    Requires: X-Admin-API-Key header

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: TENANT_NOT_FOUND
        - 409 Conflict: INVALID_STATUS_TRANSITION
        - 500 Internal Server Error: Server error
    """
    return await _change_status(SuspendTenantUseCase(uow, registry), tenant_id)


@router.post(
    "/tenants/{tenant_id}/restore",
    status_code=status.HTTP_200_OK,
    response_model=TenantStatusResponse,
)
async def restore_tenant(
    tenant_id: UUID,
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: TenantRegistry = Depends(get_registry),
):
    """
    Restore Tenant

    Billing system endpoint to restore a suspended tenant after payment.

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: TENANT_NOT_FOUND
        - 409 Conflict: INVALID_STATUS_TRANSITION (tenant was cancelled)
        - 500 Internal Server Error: Server error
    """
    return await _change_status(RestoreTenantUseCase(uow, registry), tenant_id)


@router.post(
    "/tenants/{tenant_id}/cancel",
    status_code=status.HTTP_200_OK,
    response_model=TenantStatusResponse,
)
async def cancel_tenant(
    tenant_id: UUID,
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: TenantRegistry = Depends(get_registry),
):
    """
    Cancel Tenant

    Ends the subscription. A cancelled tenant cannot be restored.

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: TENANT_NOT_FOUND
        - 500 Internal Server Error: Server error
    """
    return await _change_status(CancelTenantUseCase(uow, registry), tenant_id)


@router.post(
    "/tenants/{tenant_id}/reset-usage",
    status_code=status.HTTP_200_OK,
    response_model=ResetTenantUsageResponse,
)
async def reset_tenant_usage(
    tenant_id: UUID,
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: TenantRegistry = Depends(get_registry),
):
    """
    Zero the tenant's monthly crawl counter.

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: TENANT_NOT_FOUND
        - 500 Internal Server Error: Server error
    """
    result = await ResetTenantUsageUseCase(uow, registry).execute(tenant_id)

    if result.is_err():
        error = result.error
        if error.code == "TENANT_NOT_FOUND":
            raise ClientError(error, status_code=status.HTTP_404_NOT_FOUND)
        raise ServerError(error)

    return result.value


@router.post(
    "/scaling/apply",
    status_code=status.HTTP_200_OK,
    response_model=ApplyScalingResponse,
)
async def apply_scaling(
    changes: ScalingChanges,
    governance: Governance = Depends(get_governance),
):
    """
    Re-plan capacity and re-derive every active tenant's limits.

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 422 Unprocessable Entity: INVALID_SCALING_CONFIG
    """
    use_case = ApplyScalingUseCase(
        governance.planner, governance.registry, governance.orchestrator, governance.use_planner
    )
    result = await use_case.execute(changes)

    if result.is_err():
        error = result.error
        if error.code == "INVALID_SCALING_CONFIG":
            raise ClientError(error, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)
        raise ServerError(error)

    return result.value


@router.get("/metrics/system", response_model=SystemMetrics)
async def get_system_metrics(monitor: UsageMonitor = Depends(get_monitor)):
    return await monitor.get_system_metrics()


@router.get("/metrics/utilization", response_model=ResourceUtilization)
async def get_resource_utilization(monitor: UsageMonitor = Depends(get_monitor)):
    return await monitor.get_resource_utilization()


@router.get("/metrics/performance", response_model=PerformanceAnalytics)
async def get_performance_analytics(
    time_range: str = "24h", monitor: UsageMonitor = Depends(get_monitor)
):
    """
    Recorded metrics and tenant growth over `time_range` (1h, 24h, 7d, 30d).

    Raises:
        - 400 Bad Request: INVALID_TIME_RANGE
    """
    try:
        return await monitor.get_performance_analytics(time_range)
    except ValueError as e:
        raise ClientError(Error("INVALID_TIME_RANGE", str(e)))


@router.get("/queues", response_model=List[QueueStats])
async def list_queues(
    tenant_id: Optional[UUID] = None, governance: Governance = Depends(get_governance)
):
    orchestrator = governance.orchestrator
    if tenant_id is not None:
        return orchestrator.get_tenant_queue_stats(tenant_id)
    return orchestrator.get_all_queue_stats()


async def _toggle_queue(name: str, pause: bool, governance: Governance) -> dict:
    orchestrator = governance.orchestrator
    done = await (orchestrator.pause_queue(name) if pause else orchestrator.resume_queue(name))
    if not done:
        raise ClientError(
            Error("QUEUE_NOT_FOUND", f"Queue {name} not found"),
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return {"queue": name, "paused": pause}


@router.post("/queues/{name}/pause")
async def pause_queue(name: str, governance: Governance = Depends(get_governance)):
    """Stop workers taking new jobs from the queue; running jobs finish"""
    return await _toggle_queue(name, True, governance)


@router.post("/queues/{name}/resume")
async def resume_queue(name: str, governance: Governance = Depends(get_governance)):
    return await _toggle_queue(name, False, governance)
