from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from crawlgate.app.services.usage_monitor import UsageMonitor
from crawlgate.depends import get_monitor

router = APIRouter()


@router.get("/health")
async def health_check(monitor: UsageMonitor = Depends(get_monitor)):
    """
    Probe the datastore, the job-queue engine, the queues and the tenant registry.

    Returns 200 when every probe passes and 503 otherwise, with the same body.
    """
    report = await monitor.health_check()
    return JSONResponse(
        status_code=200 if report.healthy else 503,
        content=report.model_dump(mode="json"),
    )
