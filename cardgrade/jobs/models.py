"""Job record data model for grade estimation jobs."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional
from pydantic import Field
import uuid

from cardgrade.grading.models import (
    CamelModel,
    CardIdentity,
    CardInput,
    Evidence,
    GradeEstimate,
    GradeOutcome,
    WorthGradingResult,
)

DEFAULT_TTL = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class StepStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    SKIPPED = "skipped"


class StepName(str, Enum):
    OCR_IDENTITY = "ocr_identity"
    GRADE_MODEL = "grade_model"
    PARSE_VALIDATE = "parse_validate"
    POST_GRADING_VALUE = "post_grading_value"


class JobStep(CamelModel):
    status: StepStatus = StepStatus.QUEUED
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    ms: Optional[int] = None
    error: Optional[str] = None


class JobSteps(CamelModel):
    ocr_identity: JobStep = Field(default_factory=JobStep)
    grade_model: JobStep = Field(default_factory=JobStep)
    parse_validate: JobStep = Field(default_factory=JobStep)
    post_grading_value: JobStep = Field(default_factory=JobStep)

    def get(self, name: StepName) -> JobStep:
        return getattr(self, name.value)


class JobPartial(CamelModel):
    """Fields published to pollers while the job is still running."""
    identity: Optional[CardIdentity] = None
    preliminary_range: Optional[str] = None
    probabilities: Optional[List[GradeOutcome]] = None
    evidence: Optional[Evidence] = None


class JobFinal(JobPartial):
    estimate: Optional[GradeEstimate] = None
    post_grading_value: Optional[WorthGradingResult] = None


class JobInput(CamelModel):
    image_urls: List[str]
    card: Optional[CardInput] = None


class GradeEstimateJob(CamelModel):
    """Tracks the lifecycle and progressive output of one estimate job."""
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED
    steps: JobSteps = Field(default_factory=JobSteps)
    partial: JobPartial = Field(default_factory=JobPartial)
    final: Optional[JobFinal] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @classmethod
    def create(cls, ttl: timedelta = DEFAULT_TTL, now: Optional[datetime] = None) -> "GradeEstimateJob":
        now = now or utcnow()
        return cls(created_at=now, updated_at=now, expires_at=now + ttl)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (now or utcnow())

    def to_status_response(self) -> dict:
        """Poll payload: a JSON-ready snapshot of the job."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "steps": self.steps.model_dump(mode="json", by_alias=True),
            "partial": self.partial.model_dump(mode="json", by_alias=True, exclude_none=True),
            "final": self.final.model_dump(mode="json", by_alias=True) if self.final else None,
            "error": self.error,
        }
