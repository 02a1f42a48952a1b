"""
Server-sent event framing for crawl jobs.

Wire format: one ``data: <json>\\n\\n`` frame per progress or terminal event;
the stream ends after the terminal frame.
"""

from typing import Any, AsyncIterator, Dict
import json
import logging

from src.crawler.logging_utils import log_event
from src.orchestrator.job_manager import CrawlJob, CrawlJobManager


logger = logging.getLogger(__name__)

STREAMED_KINDS = ("progress", "terminal")


def format_sse(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


async def stream_job_events(job: CrawlJob, manager: CrawlJobManager) -> AsyncIterator[str]:
    """
    Yield SSE frames for ``job`` until its terminal event.

    If the client goes away first, the job is asked to stop.
    """
    finished = False
    try:
        async for event in job.channel:
            if event.kind not in STREAMED_KINDS:
                continue
            yield format_sse(event.data)
            if event.is_terminal:
                finished = True
    finally:
        if not finished and not job.is_finished:
            log_event(logger, logging.INFO, "client_disconnected", job_id=job.job_id)
            manager.stop_job(job.job_id)
