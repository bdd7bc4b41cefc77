"""Background crawl jobs for SupportBot.

Each job runs one crawl in its own asyncio task and exposes its progress, a
cooperative stop, and the final report for review. Jobs live in memory only.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pipelines.crawler import CrawlMode, CrawlOrchestrator, CrawlProgress, CrawlReport, commit_selected
from pipelines.errors import InvalidInput
from pipelines.models import QAEntry
from .crawl_service import CrawlService

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Job status enumeration."""
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class JobRecord:
    """Job record for tracking crawl job state."""
    id: str
    url: str
    mode: CrawlMode
    status: JobStatus
    created_at: datetime
    chatbot_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    stop_requested: bool = False

    def add_log(self, message: str):
        """Add a log message with timestamp."""
        timestamp = datetime.now(timezone.utc).isoformat()
        self.logs.append(f"[{timestamp}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "url": self.url,
            "mode": self.mode.value,
            "status": self.status.value,
            "chatbot_id": self.chatbot_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "progress": self.progress,
            "logs": list(self.logs),
            "error": self.error,
            "error_type": self.error_type,
            "result": self.result,
            "stop_requested": self.stop_requested,
        }


class CrawlJobManager:
    """Runs crawl jobs in the background and keeps the most recent ones."""

    def __init__(self, service: CrawlService, max_jobs: int = 100):
        self.service = service
        self.max_jobs = max_jobs
        self._jobs: "OrderedDict[str, JobRecord]" = OrderedDict()
        self._reports: Dict[str, CrawlReport] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._orchestrators: Dict[str, CrawlOrchestrator] = {}

    def enqueue(self, url: str, mode: CrawlMode, chatbot_id: Optional[str] = None) -> JobRecord:
        """Validate the seed URL and start a crawl task. Must be called from a running event loop.

        Raises:
            InvalidInput: If the URL is rejected
        """
        seed_url = self.service.validate(url)
        record = JobRecord(
            id=str(uuid.uuid4()),
            url=seed_url,
            mode=CrawlMode(mode),
            status=JobStatus.QUEUED,
            created_at=datetime.now(timezone.utc),
            chatbot_id=chatbot_id,
        )
        record.add_log("Job queued")
        self._jobs[record.id] = record
        self._evict()

        self._tasks[record.id] = asyncio.get_running_loop().create_task(self._execute(record))
        logger.info(f"Enqueued crawl job {record.id} ({record.mode.value}) for {seed_url}")
        return record

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 100) -> List[JobRecord]:
        """List jobs, newest first, optionally filtered by status."""
        jobs = [j for j in self._jobs.values() if status is None or j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def report(self, job_id: str) -> CrawlReport:
        """The finished report awaiting review.

        Raises:
            InvalidInput: If the job is unknown, unfinished or already committed
        """
        report = self._reports.get(job_id)
        if report is None:
            raise InvalidInput(f"Crawl job {job_id} has no report awaiting review")
        return report

    def commit(self, job_id: str, chatbot_id: Optional[str], indices: Sequence[int]) -> List[QAEntry]:
        """Store the selected candidates of a finished job. A report can be committed once."""
        if not chatbot_id:
            raise InvalidInput("chatbot_id is required")
        report = self.report(job_id)
        created = commit_selected(self.service.store, chatbot_id, report, indices)
        self._reports.pop(job_id, None)
        record = self._jobs.get(job_id)
        if record is not None:
            record.add_log(f"Committed {len(created)} candidates to chatbot {chatbot_id}")
        return created

    def stop(self, job_id: str) -> bool:
        """Request a cooperative stop. Returns False if the job is unknown or already finished."""
        record = self._jobs.get(job_id)
        if record is None or record.status in (JobStatus.DONE, JobStatus.FAILED):
            return False
        record.stop_requested = True
        record.add_log("Stop requested")
        orchestrator = self._orchestrators.get(job_id)
        if orchestrator is not None:
            orchestrator.request_stop()
        return True

    async def wait(self, job_id: str) -> Optional[JobRecord]:
        """Wait for a job's task to finish and return its record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self._jobs.get(job_id)

    async def shutdown(self):
        """Cancel running crawl tasks."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Crawl job manager shut down ({len(tasks)} running jobs cancelled)")

    def _evict(self):
        while len(self._jobs) > self.max_jobs:
            job_id, record = next(iter(self._jobs.items()))
            if record.status in (JobStatus.QUEUED, JobStatus.RUNNING):
                break
            self._jobs.pop(job_id)
            self._reports.pop(job_id, None)
            self._tasks.pop(job_id, None)

    async def _execute(self, record: JobRecord):
        """Execute a single crawl job."""
        record.status = JobStatus.RUNNING
        record.started_at = datetime.now(timezone.utc)
        record.add_log("Job started")

        def on_progress(progress: CrawlProgress):
            record.progress = progress.to_dict()
            orchestrator = self._orchestrators.get(record.id)
            if record.stop_requested and orchestrator is not None and not progress.stopping:
                orchestrator.request_stop()

        try:
            async with self.service.fetcher_factory() as fetcher:
                orchestrator = self.service.create_orchestrator(fetcher, on_progress=on_progress)
                self._orchestrators[record.id] = orchestrator
                report = await orchestrator.run(record.url, mode=record.mode, chatbot_id=record.chatbot_id)

            self._reports[record.id] = report
            record.result = report.to_dict()
            record.status = JobStatus.DONE
            record.add_log(
                f"Job completed: {report.pages_visited} pages, {len(report.candidates)} candidate Q&As"
            )
        except asyncio.CancelledError:
            record.status = JobStatus.FAILED
            record.error = "Job cancelled"
            record.add_log("Job cancelled")
            raise
        except Exception as e:
            record.status = JobStatus.FAILED
            record.error = str(e)
            record.error_type = type(e).__name__
            record.add_log(f"Job failed: {e}")
            logger.error(f"Crawl job {record.id} failed: {e}")
        finally:
            record.completed_at = datetime.now(timezone.utc)
            self._orchestrators.pop(record.id, None)
