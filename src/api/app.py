"""
FastAPI application for streaming crawl jobs.
"""

from typing import AsyncIterator, Optional
from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI
import uvicorn

from src.api.routes import router
from src.crawler.config import CrawlerConfig
from src.crawler.logging_utils import configure_logging
from src.orchestrator.job_manager import CrawlJobManager


logger = logging.getLogger(__name__)


def create_app(manager: Optional[CrawlJobManager] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    if manager is None:
        config = CrawlerConfig.from_env()
        configure_logging(config.log_level)
        manager = CrawlJobManager(config)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        logger.info("Crawl API started, max parallel jobs: %d", manager.config.max_parallel_jobs)
        try:
            yield
        finally:
            await manager.shutdown()
            logger.info("Crawl jobs shut down")

    application = FastAPI(title="Naver Crawl API", version="0.1.0", lifespan=lifespan)
    application.state.job_manager = manager
    application.include_router(router)

    @application.get("/health")
    def healthcheck() -> dict:
        return {"status": "ok", "activeJobs": manager.active_jobs}

    return application


def main() -> None:
    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=int(os.getenv("API_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
