"""
Tenant API Routes

Endpoints a tenant's own users call. Tokens come from the identity service
and must be scoped to the tenant named in the path.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from crawlgate.api.error import ClientError, ServerError
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator
from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.app.services.usage_monitor import TenantMetrics, UsageMonitor
from crawlgate.app.use_cases.crawls import (
    CancelCrawlResponse,
    CancelCrawlUseCase,
    StartCrawlCommand,
    StartCrawlResponse,
    StartCrawlUseCase,
)
from crawlgate.app.use_cases.tenants import (
    TenantResponse,
    UpdateTenantSettingsResponse,
    UpdateTenantSettingsUseCase,
)
from crawlgate.depends import (
    enforce_rate_limit,
    get_monitor,
    get_orchestrator,
    get_registry,
    get_tenant,
    get_tenant_member,
    get_unit_of_work,
)
from crawlgate.domain.values.tenancy import TenantSnapshot
from crawlgate.libs.result import Error

router = APIRouter(prefix="/tenants", tags=["Tenant"])

SETTINGS_ROLES = ("owner",)


@router.get(
    "/{slug}",
    status_code=status.HTTP_200_OK,
    response_model=TenantResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def get_tenant_info(tenant: TenantSnapshot = Depends(get_tenant)):
    """
    Tenant plan, limits, usage and settings.

    Raises:
        - 404 Not Found: TENANT_NOT_FOUND
        - 429 Too Many Requests: RATE_LIMIT_EXCEEDED
    """
    return TenantResponse.from_snapshot(tenant)


@router.put(
    "/{slug}/settings",
    status_code=status.HTTP_200_OK,
    response_model=UpdateTenantSettingsResponse,
)
async def update_tenant_settings(
    changes: dict,
    tenant: TenantSnapshot = Depends(get_tenant),
    current_user: dict = Depends(get_tenant_member),
    uow: UnitOfWork = Depends(get_unit_of_work),
    registry: TenantRegistry = Depends(get_registry),
):
    """
    Update Tenant Settings

    Partial update: nested sections are merged into the current settings.

    Raises:
        - 401 Unauthorized: Invalid or expired JWT
        - 403 Forbidden: FORBIDDEN (other tenant or not an owner)
        - 404 Not Found: TENANT_NOT_FOUND
        - 422 Unprocessable Entity: INVALID_SETTINGS
        - 500 Internal Server Error: Server error
    """
    if current_user.get("role") not in SETTINGS_ROLES:
        raise ClientError(
            Error("FORBIDDEN", "Only the tenant owner can change settings"),
            status_code=status.HTTP_403_FORBIDDEN,
        )

    use_case = UpdateTenantSettingsUseCase(uow, registry)
    result = await use_case.execute(tenant.id, changes, UUID(current_user["user_id"]))

    if result.is_err():
        error = result.error
        if error.code == "TENANT_NOT_FOUND":
            raise ClientError(error, status_code=status.HTTP_404_NOT_FOUND)
        if error.code == "INVALID_SETTINGS":
            raise ClientError(error, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)
        raise ServerError(error)

    return result.value


@router.post(
    "/{slug}/crawls",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=StartCrawlResponse,
    dependencies=[Depends(get_tenant_member), Depends(enforce_rate_limit)],
)
async def start_crawl(
    command: StartCrawlCommand,
    tenant: TenantSnapshot = Depends(get_tenant),
    orchestrator: QueueOrchestrator = Depends(get_orchestrator),
):
    """
    Submit crawl or analysis work.

    Raises:
        - 401 Unauthorized: Invalid or expired JWT
        - 403 Forbidden: FORBIDDEN, TENANT_LIMIT_EXCEEDED
        - 404 Not Found: TENANT_NOT_FOUND
        - 429 Too Many Requests: RATE_LIMIT_EXCEEDED
        - 503 Service Unavailable: QUEUE_FULL
        - 500 Internal Server Error: Server error
    """
    use_case = StartCrawlUseCase(orchestrator)
    result = await use_case.execute(tenant.id, command)

    if result.is_err():
        error = result.error
        if error.code == "TENANT_LIMIT_EXCEEDED":
            raise ClientError(error, status_code=status.HTTP_403_FORBIDDEN)
        if error.code == "QUEUE_FULL":
            raise ClientError(error, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        raise ServerError(error)

    return result.value


@router.delete(
    "/{slug}/crawls/{job_id}",
    status_code=status.HTTP_200_OK,
    response_model=CancelCrawlResponse,
    dependencies=[Depends(get_tenant_member)],
)
async def cancel_crawl(
    job_id: str,
    tenant: TenantSnapshot = Depends(get_tenant),
    orchestrator: QueueOrchestrator = Depends(get_orchestrator),
):
    """
    Cancel a job that has not started yet.

    Raises:
        - 401 Unauthorized: Invalid or expired JWT
        - 403 Forbidden: FORBIDDEN
        - 404 Not Found: TENANT_NOT_FOUND, JOB_NOT_FOUND
        - 409 Conflict: JOB_ACTIVE, JOB_ALREADY_FINISHED
    """
    use_case = CancelCrawlUseCase(orchestrator)
    result = await use_case.execute(tenant.id, job_id)

    if result.is_err():
        error = result.error
        if error.code == "JOB_NOT_FOUND":
            raise ClientError(error, status_code=status.HTTP_404_NOT_FOUND)
        if error.code in ("JOB_ACTIVE", "JOB_ALREADY_FINISHED"):
            raise ClientError(error, status_code=status.HTTP_409_CONFLICT)
        raise ServerError(error)

    return result.value


@router.get(
    "/{slug}/metrics",
    status_code=status.HTTP_200_OK,
    response_model=TenantMetrics,
    dependencies=[Depends(get_tenant_member)],
)
async def get_tenant_metrics(
    tenant: TenantSnapshot = Depends(get_tenant),
    monitor: UsageMonitor = Depends(get_monitor),
):
    """
    Usage against limits, queue depth and recent audit events.

    Raises:
        - 401 Unauthorized: Invalid or expired JWT
        - 403 Forbidden: FORBIDDEN
        - 404 Not Found: TENANT_NOT_FOUND
    """
    result = await monitor.get_tenant_metrics(tenant.id)

    if result.is_err():
        raise ClientError(result.error, status_code=status.HTTP_404_NOT_FOUND)

    return result.value
