"""Background key regeneration jobs"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from collections import OrderedDict
from typing import Dict, Optional

from keycustody.application.services.key_rotation import KeyRotationCoordinator, RegenerationReport
from keycustody.core.config import settings
from keycustody.core.errors import KeyCustodyError
from keycustody.infrastructure.logging import get_logger
from keycustody.infrastructure.metrics import ssh_key_regeneration_jobs_in_progress

logger = get_logger(__name__)

MAX_FINISHED_JOBS = 100


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RegenerationJob:
    """State of one submitted regeneration"""
    job_id: str
    name: str
    bits: Optional[int]
    status: JobStatus = JobStatus.PENDING
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    fingerprint: Optional[str] = None
    error: Optional[str] = None
    report: Optional[RegenerationReport] = None

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobAlreadyRunningError(KeyCustodyError):
    """Raised when a regeneration for the same key name is still running"""

    def __init__(self, name: str, job_id: str):
        self.name = name
        self.job_id = job_id
        super().__init__(
            f"Regeneration for '{name}' already running (job {job_id})",
            {"name": name, "job_id": job_id},
        )


class RegenerationJobManager:
    """Runs regenerations as asyncio tasks, one running job per key name.

    Finished jobs stay queryable until more than ``max_finished_jobs`` newer
    ones have completed.
    """

    def __init__(
        self,
        coordinator: KeyRotationCoordinator,
        max_finished_jobs: int = MAX_FINISHED_JOBS,
    ):
        self.coordinator = coordinator
        self.max_finished_jobs = max(0, max_finished_jobs)
        self._jobs: Dict[str, RegenerationJob] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running_by_name: Dict[str, str] = {}

    def submit(
        self,
        name: str,
        bits: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> RegenerationJob:
        running = self._running_by_name.get(name)
        if running is not None:
            raise JobAlreadyRunningError(name, running)

        job = RegenerationJob(job_id=uuid.uuid4().hex, name=name, bits=bits)
        self._jobs[job.job_id] = job
        self._running_by_name[name] = job.job_id
        self._tasks[job.job_id] = asyncio.create_task(self._run(job, comment))
        logger.info("regeneration_job_submitted", job_id=job.job_id, key_name=name, bits=bits)
        return job

    async def _run(self, job: RegenerationJob, comment: Optional[str]) -> None:
        job.status = JobStatus.RUNNING
        if settings.enable_metrics:
            ssh_key_regeneration_jobs_in_progress.inc()
        try:
            report = await self.coordinator.regenerate_with_report(
                job.name, bits=job.bits, comment=comment
            )
        except KeyCustodyError as e:
            job.status = JobStatus.FAILED
            job.error = e.message
            logger.error("regeneration_job_failed", job_id=job.job_id, error=e.message)
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error = "cancelled"
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            logger.exception("regeneration_job_crashed", job_id=job.job_id)
            raise
        else:
            job.status = JobStatus.SUCCEEDED
            job.report = report
            job.fingerprint = report.record.fingerprint
            logger.info("regeneration_job_succeeded", job_id=job.job_id, fingerprint=job.fingerprint)
        finally:
            job.finished_at = datetime.now(timezone.utc)
            self._running_by_name.pop(job.name, None)
            self._tasks.pop(job.job_id, None)
            self._prune(job)
            if settings.enable_metrics:
                ssh_key_regeneration_jobs_in_progress.dec()

    def _prune(self, job: RegenerationJob) -> None:
        self._finished[job.job_id] = None
        while len(self._finished) > self.max_finished_jobs:
            expired, _ = self._finished.popitem(last=False)
            self._jobs.pop(expired, None)

    def status(self, job_id: str) -> Optional[RegenerationJob]:
        return self._jobs.get(job_id)

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> RegenerationJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(job_id)
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return job

    async def shutdown(self) -> None:
        """Cancel jobs that are still running."""
        tasks = list(self._tasks.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("regeneration_jobs_stopped")
