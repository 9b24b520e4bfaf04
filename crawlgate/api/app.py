import logging
from contextlib import asynccontextmanager
from typing import Mapping, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

from crawlgate.app.services.queue_orchestrator import WorkItem
from crawlgate.container import Governance, build_governance, seed_default_plans
from crawlgate.domain.entities import QueueKind

from .error import ClientError, ServerError

logger = logging.getLogger(__name__)


async def handle_client_error(request: Request, exc: ClientError):
    error_dict = {"code": exc.base_error.code, "message": exc.base_error.message}
    if exc.base_error.details:
        error_dict["details"] = exc.base_error.details
    logger.warning(f"Client error: {error_dict}")
    return JSONResponse(
        status_code=exc.status_code, content={"error": error_dict}, headers=exc.headers
    )


async def handle_server_error(request: Request, exc: ServerError):
    error_dict = {"code": exc.base_error.code, "message": "Internal server error"}
    logger.error(f"Server error: {exc.base_error.code}: {exc.base_error.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": error_dict}
    )


def create_app(
    ApplicationConfig,
    governance: Optional[Governance] = None,
    work_items: Optional[Mapping[QueueKind, WorkItem]] = None,
) -> FastAPI:
    """Build the API. A prebuilt governance layer skips the startup wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if governance is not None:
            app.state.governance = governance
            yield
            return

        logging.basicConfig(level=ApplicationConfig.LOG_LEVEL)
        from crawlgate.depends import AsyncSessionLocal, engine

        logger.info("Initializing database schema...")
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        built = build_governance(ApplicationConfig, AsyncSessionLocal, work_items)
        await seed_default_plans(built.uow_factory)
        await built.start()
        app.state.governance = built
        try:
            yield
        finally:
            await built.stop()
            await engine.dispose()

    app = FastAPI(title="Crawlgate", version="0.1.0", lifespan=lifespan)
    if governance is not None:
        app.state.governance = governance

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ApplicationConfig.CORS_ORIGINS,
        allow_credentials=ApplicationConfig.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from crawlgate.api.routes import admin, health, tenant

    app.include_router(health.router, tags=["Health"])
    app.include_router(tenant.router, tags=["Tenant"])
    app.include_router(admin.router, tags=["Admin"])

    app.add_exception_handler(ClientError, handle_client_error)
    app.add_exception_handler(ServerError, handle_server_error)

    return app
