import uvicorn

from config import ApplicationConfig
from crawlgate.api.app import create_app

# Work items (scraping, analysis) are registered by the deployment that embeds
# this app through create_app(..., work_items=...)
app = create_app(ApplicationConfig)

if __name__ == "__main__":
    uvicorn.run(
        "api:app",
        host=ApplicationConfig.API_HOST,
        port=ApplicationConfig.API_PORT,
        reload=True,
        log_level=ApplicationConfig.LOG_LEVEL.lower(),
    )
