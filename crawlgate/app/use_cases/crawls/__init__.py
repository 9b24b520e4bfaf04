"""Crawl submission and cancellation use cases."""

from .cancel_crawl_use_case import CancelCrawlUseCase
from .dtos import CancelCrawlResponse, StartCrawlCommand, StartCrawlResponse
from .start_crawl_use_case import StartCrawlUseCase

__all__ = [
    "StartCrawlUseCase",
    "CancelCrawlUseCase",
    "StartCrawlCommand",
    "StartCrawlResponse",
    "CancelCrawlResponse",
]
