"""
Crawl Use Case DTOs
"""

from typing import Optional

from pydantic import BaseModel, Field

from crawlgate.domain.entities import JobState, QueueKind


class StartCrawlCommand(BaseModel):
    """Work submitted by a tenant; the payload is handed to the work item untouched"""

    kind: QueueKind = QueueKind.web_scraping
    payload: dict = Field(default_factory=dict)
    priority: Optional[int] = Field(default=None, ge=0)
    delay_seconds: Optional[float] = Field(default=None, ge=0)


class StartCrawlResponse(BaseModel):
    job_id: str
    queue: str
    state: JobState


class CancelCrawlResponse(BaseModel):
    job_id: str
    status: str
