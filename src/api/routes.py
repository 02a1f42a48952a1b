"""
Crawl routes.

POST /crawl/stream             start a job, stream its events (SSE)
POST /crawl/jobs/{id}/stop     cooperative stop
GET  /crawl/jobs               list jobs
GET  /crawl/jobs/{id}          job status
GET  /blogs/{blog_id}/categories   category tree of a blog
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from src.api.schemas import BlogCategoryResponse, CrawlRequest, StopJobResponse
from src.api.sse import stream_job_events
from src.crawler.runner import list_blog_categories
from src.orchestrator.job_manager import CrawlJobManager


router = APIRouter(tags=["crawl"])


def get_job_manager(request: Request) -> CrawlJobManager:
    return request.app.state.job_manager


@router.post("/crawl/stream", summary="Run a crawl job and stream its progress")
async def stream_crawl(
    body: CrawlRequest,
    manager: CrawlJobManager = Depends(get_job_manager),
) -> StreamingResponse:
    job = manager.start_job(body.url, body.to_settings())
    return StreamingResponse(
        stream_job_events(job, manager),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Crawl-Job-Id": job.job_id,
        },
    )


@router.post("/crawl/jobs/{job_id}/stop", response_model=StopJobResponse)
async def stop_job(job_id: str, manager: CrawlJobManager = Depends(get_job_manager)) -> StopJobResponse:
    try:
        stopped = manager.stop_job(job_id)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return StopJobResponse(jobId=job_id, stopped=stopped)


@router.get("/crawl/jobs")
async def list_jobs(manager: CrawlJobManager = Depends(get_job_manager)) -> List[Dict[str, Any]]:
    return manager.list_jobs()


@router.get("/crawl/jobs/{job_id}")
async def get_job(job_id: str, manager: CrawlJobManager = Depends(get_job_manager)) -> Dict[str, Any]:
    try:
        return manager.get_status(job_id)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")


@router.get("/blogs/{blog_id}/categories", response_model=List[BlogCategoryResponse])
async def blog_categories(
    blog_id: str,
    manager: CrawlJobManager = Depends(get_job_manager),
) -> List[Dict[str, Any]]:
    return await list_blog_categories(blog_id, config=manager.config)
