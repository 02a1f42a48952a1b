"""
Job Manager - Manages crawl job lifecycle.

Responsibilities:
- Create jobs, each with its own browser session manager
- Bound the number of jobs running at once
- Stop jobs cooperatively and report their status
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
import asyncio
import logging
import uuid

from src.crawler.config import CrawlerConfig
from src.crawler.logging_utils import log_event
from src.crawler.progress import ChannelEvent, EventChannel
from src.crawler.runner import run_crawl
from src.crawler.session import BrowserSessionManager
from src.models.crawl import ExtractedRecord, TerminalEvent


logger = logging.getLogger(__name__)

MAX_FINISHED_JOBS = 100


@dataclass
class CrawlJob:
    """One crawl job and its live event channel."""
    job_id: str
    target_url: str
    settings: Dict[str, Any]
    channel: EventChannel = field(default_factory=EventChannel)
    state: str = "queued"  # queued/running/completed/failed/cancelled
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    last_progress: Optional[Dict[str, Any]] = None
    terminal: Optional[Dict[str, Any]] = None
    results: List[ExtractedRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.state in ("completed", "failed", "cancelled")

    def on_progress(self, data: Dict[str, Any]) -> None:
        if data.get("isComplete"):
            self.terminal = data
        else:
            self.last_progress = data

    def on_error(self, message: str) -> None:
        self.errors.append(message)

    def get_status(self) -> Dict[str, Any]:
        """Status snapshot."""
        progress = self.last_progress or {}
        return {
            "jobId": self.job_id,
            "url": self.target_url,
            "state": self.state,
            "stopRequested": self.stop_event.is_set(),
            "currentPage": progress.get("currentPage", 0),
            "totalPages": progress.get("totalPages", 0),
            "itemsFound": progress.get("itemsFound", 0),
            "itemsCrawled": progress.get("itemsCrawled", 0),
            "errors": list(self.errors),
            "error": (self.terminal or {}).get("error"),
            "createdAt": self.created_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


class CrawlJobManager:
    """Manage concurrent crawl jobs."""

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        session_manager_factory: Callable[[CrawlerConfig], BrowserSessionManager] = BrowserSessionManager,
        runner: Callable[..., Any] = run_crawl,
    ):
        self.config = config or CrawlerConfig.from_env()
        self._session_manager_factory = session_manager_factory
        self._runner = runner
        self._semaphore = asyncio.Semaphore(self.config.max_parallel_jobs)
        self.jobs: Dict[str, CrawlJob] = {}

    def start_job(self, target_url: str, settings: Optional[Dict[str, Any]] = None) -> CrawlJob:
        """
        Create a job and schedule it on the running event loop.

        Returns:
            The job; consume ``job.channel`` for its events
        """
        self._prune()
        job = CrawlJob(
            job_id=f"crawl_{uuid.uuid4().hex[:8]}",
            target_url=target_url,
            settings=dict(settings or {}),
        )
        self.jobs[job.job_id] = job
        job.task = asyncio.create_task(self._run(job))
        log_event(logger, logging.INFO, "job_created", job_id=job.job_id, url=target_url)
        return job

    async def _run(self, job: CrawlJob) -> None:
        async with self._semaphore:
            if job.stop_event.is_set():
                job.state = "cancelled"
                job.finished_at = datetime.now()
                job.terminal = TerminalEvent(results=[], message="Cancelled before start").to_dict()
                job.channel.put(ChannelEvent("terminal", job.terminal))
                return

            job.state = "running"
            try:
                job.results = await self._runner(
                    job.target_url,
                    job.settings,
                    progress_sink=job.on_progress,
                    error_sink=job.on_error,
                    stop_predicate=job.stop_event.is_set,
                    config=self.config,
                    session_manager=self._session_manager_factory(self.config),
                    channel=job.channel,
                )
                job.state = "cancelled" if job.stop_event.is_set() else "completed"
            except Exception as exc:
                job.state = "failed"
                log_event(logger, logging.ERROR, "job_failed", job_id=job.job_id, error=str(exc))
                if job.terminal is None:
                    job.terminal = {"error": str(exc), "isComplete": True}
                    job.channel.put(ChannelEvent("terminal", job.terminal))
            finally:
                job.finished_at = datetime.now()
                log_event(logger, logging.INFO, "job_finished", job_id=job.job_id, state=job.state, items=len(job.results))

    def stop_job(self, job_id: str) -> bool:
        """
        Request a cooperative stop.

        Returns:
            False when the job had already finished
        """
        job = self.get_job(job_id)
        if job.is_finished:
            return False
        job.stop_event.set()
        log_event(logger, logging.INFO, "job_stop_requested", job_id=job_id)
        return True

    def get_job(self, job_id: str) -> CrawlJob:
        if job_id not in self.jobs:
            raise KeyError(f"Job {job_id} not found")
        return self.jobs[job_id]

    def get_status(self, job_id: str) -> Dict[str, Any]:
        return self.get_job(job_id).get_status()

    def list_jobs(self) -> List[Dict[str, Any]]:
        return [job.get_status() for job in self.jobs.values()]

    @property
    def active_jobs(self) -> int:
        return sum(1 for job in self.jobs.values() if not job.is_finished)

    async def wait(self, job_id: str) -> CrawlJob:
        """Wait for a job to finish."""
        job = self.get_job(job_id)
        if job.task is not None:
            await job.task
        return job

    async def shutdown(self) -> None:
        """Stop every job and wait for their browsers to close."""
        for job in self.jobs.values():
            if not job.is_finished:
                job.stop_event.set()
        tasks = [job.task for job in self.jobs.values() if job.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _prune(self) -> None:
        finished = [job for job in self.jobs.values() if job.is_finished]
        for job in finished[:max(0, len(finished) - MAX_FINISHED_JOBS)]:
            del self.jobs[job.job_id]
