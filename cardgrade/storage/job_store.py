"""In-memory job record store with TTL-based cleanup."""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from cardgrade.config import settings
from cardgrade.jobs.models import GradeEstimateJob, utcnow

logger = logging.getLogger(__name__)


class JobStore:
    """Keyed collection of job records.

    Each job expires a fixed TTL after creation. Expired entries are dropped
    on every ``create``/``get`` and by explicit ``cleanup_expired`` sweeps.
    Only the task running a job mutates it; everything else reads.
    """

    def __init__(self, ttl_minutes: int = 30):
        self._jobs: Dict[str, GradeEstimateJob] = {}
        self._ttl = timedelta(minutes=ttl_minutes)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def create(self, now: Optional[datetime] = None) -> GradeEstimateJob:
        self.cleanup_expired(now)
        job = GradeEstimateJob.create(ttl=self._ttl, now=now)
        self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str, now: Optional[datetime] = None) -> Optional[GradeEstimateJob]:
        self.cleanup_expired(now)
        return self._jobs.get(job_id)

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Remove jobs past their expiry. Returns count of removed jobs."""
        now = now or utcnow()
        expired = [job_id for job_id, job in self._jobs.items() if job.is_expired(now)]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug("Evicted %d expired job(s)", len(expired))
        return len(expired)

    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for job in self._jobs.values():
            counts[job.status.value] = counts.get(job.status.value, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs


# Global instance
job_store = JobStore(ttl_minutes=settings.job_ttl_minutes)


def create_job(store: Optional[JobStore] = None) -> GradeEstimateJob:
    """New ``queued`` job registered in ``store`` (the global store by default)."""
    return (job_store if store is None else store).create()


def get_job(job_id: str, store: Optional[JobStore] = None) -> Optional[GradeEstimateJob]:
    return (job_store if store is None else store).get(job_id)
