"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Optional

from cardgrade.jobs.models import GradeEstimateJob, JobInput


class JobDispatcher(ABC):
    """Abstract interface for starting and tracking grade estimate jobs."""

    @abstractmethod
    async def submit(self, job_input: JobInput) -> GradeEstimateJob:
        """Create a job record and schedule its pipeline. Returns the record."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[GradeEstimateJob]:
        """Current record for ``job_id``, or None when unknown or expired."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start background work (e.g., the expiry sweep)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Cancel outstanding jobs and stop background work."""
        ...
