"""In-process job runner using asyncio.

Every submitted job runs as its own background task so the start request
returns immediately. A sweep task evicts expired records periodically.
No external dependencies (Redis, Celery) needed.
"""

import asyncio
import logging
from typing import Optional, Set

from cardgrade.grading.pipeline import (
    PipelineDependencies,
    fail_job,
    finish_step,
    run_grade_estimate_job,
)
from cardgrade.jobs.dispatcher import JobDispatcher
from cardgrade.jobs.models import GradeEstimateJob, JobInput, StepName, StepStatus
from cardgrade.storage.job_store import JobStore

logger = logging.getLogger(__name__)


class InProcessJobRunner(JobDispatcher):
    """Local async job runner backed by a ``JobStore``."""

    def __init__(
        self,
        store: JobStore,
        deps: PipelineDependencies,
        sweep_interval_seconds: float = 60.0,
    ):
        self._store = store
        self._deps = deps
        self._sweep_interval = sweep_interval_seconds
        self._tasks: Set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def submit(self, job_input: JobInput) -> GradeEstimateJob:
        job = self._store.create()
        task = asyncio.create_task(self._run(job, job_input))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Job %s submitted with %d image(s)", job.job_id, len(job_input.image_urls))
        return job

    async def get_status(self, job_id: str) -> Optional[GradeEstimateJob]:
        return self._store.get(job_id)

    async def start(self) -> None:
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        self._running = False
        pending = list(self._tasks)
        if self._sweep_task:
            pending.append(self._sweep_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._sweep_task = None

    async def _run(self, job: GradeEstimateJob, job_input: JobInput) -> None:
        try:
            await run_grade_estimate_job(job, job_input, self._deps)
        except asyncio.CancelledError:
            self._abort(job, "Job cancelled")
            raise
        except Exception as exc:
            logger.exception("Job %s crashed", job.job_id)
            self._abort(job, f"{type(exc).__name__}: {exc}")

    @staticmethod
    def _abort(job: GradeEstimateJob, message: str) -> None:
        """Mark the job and whichever step was running as failed."""
        for name in StepName:
            if job.steps.get(name).status == StepStatus.RUNNING:
                finish_step(job, name, StepStatus.ERROR, message)
        fail_job(job, message)

    async def _sweep_loop(self) -> None:
        """Evict expired jobs every ``sweep_interval_seconds``."""
        while self._running:
            try:
                await asyncio.sleep(self._sweep_interval)
            except asyncio.CancelledError:
                break
            self._store.cleanup_expired()
