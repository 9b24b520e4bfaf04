from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from crawlgate.api.error import ClientError
from crawlgate.api.utils.jwt import verify_jwt
from crawlgate.app.services.admission_limiter import AdmissionLimiter, RateLimitInfo
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator
from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.usage_monitor import UsageMonitor
from crawlgate.container import Governance
from crawlgate.domain.values.tenancy import TenantSnapshot
from crawlgate.libs.result import Error

engine = create_async_engine(ApplicationConfig.DB_URI, echo=False, future=True)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

security = HTTPBearer()


def get_governance(request: Request) -> Governance:
    return request.app.state.governance


async def get_unit_of_work(governance: Governance = Depends(get_governance)):
    yield governance.uow_factory()


def get_registry(governance: Governance = Depends(get_governance)) -> TenantRegistry:
    return governance.registry


def get_limiter(governance: Governance = Depends(get_governance)) -> AdmissionLimiter:
    return governance.limiter


def get_orchestrator(governance: Governance = Depends(get_governance)) -> QueueOrchestrator:
    return governance.orchestrator


def get_monitor(governance: Governance = Depends(get_governance)) -> UsageMonitor:
    return governance.monitor


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to extract and verify JWT token from Authorization header.

    Returns:
        Decoded JWT payload containing user_id, tenant_id, role

    Raises:
        HTTPException: 401 if token is invalid or expired
    """
    payload = verify_jwt(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    return payload


async def get_tenant(slug: str, registry: TenantRegistry = Depends(get_registry)) -> TenantSnapshot:
    tenant = await registry.get_by_slug(slug)
    if tenant is None:
        raise ClientError(
            Error("TENANT_NOT_FOUND", f"Tenant {slug} not found"),
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return tenant


async def get_tenant_member(
    tenant: TenantSnapshot = Depends(get_tenant),
    current_user: dict = Depends(get_current_user),
) -> dict:
    """The token must be scoped to the tenant named in the path"""
    if current_user.get("tenant_id") != str(tenant.id):
        raise ClientError(
            Error("FORBIDDEN", "Token is not scoped to this tenant"),
            status_code=status.HTTP_403_FORBIDDEN,
        )
    return current_user


def _rate_limit_headers(info: RateLimitInfo) -> dict:
    return {
        "X-RateLimit-Limit": str(info.limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": str(int(info.reset_time)),
    }


async def enforce_rate_limit(
    request: Request,
    response: Response,
    tenant: TenantSnapshot = Depends(get_tenant),
    limiter: AdmissionLimiter = Depends(get_limiter),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False)),
) -> RateLimitInfo:
    """
    Count the request against the tenant's window for this endpoint.

    Raises:
        ClientError: 429 RATE_LIMIT_EXCEEDED with Retry-After when blocked
    """
    user_id = None
    if credentials is not None:
        payload = verify_jwt(credentials.credentials)
        if payload is not None:
            user_id = payload.get("user_id")

    info = await limiter.check_rate_limit(str(tenant.id), request.url.path, user_id)
    headers = _rate_limit_headers(info)

    if info.blocked:
        headers["Retry-After"] = str(info.retry_after())
        raise ClientError(
            Error("RATE_LIMIT_EXCEEDED", "Too many requests, please try again later"),
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            headers=headers,
        )

    response.headers.update(headers)
    return info
