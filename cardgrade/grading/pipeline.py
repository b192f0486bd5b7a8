"""Grade estimation job pipeline.

Runs the four steps of a job strictly in order and records status, timing
and errors for each:

1. ocr_identity: resolve images and extract the card identity (fatal)
2. grade_model: invoke the condition model (non-fatal, degrades to fallback)
3. parse_validate: build the GradeEstimate and distributions (fatal)
4. post_grading_value: worth-grading calculation (optional, non-fatal)

``job.partial.identity`` is published as soon as step 1 finishes so pollers
can show the card while the slower model call is in flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from cardgrade.grading.model_output import ModelParseResult, parse_model_output
from cardgrade.grading.models import (
    CardIdentity,
    CardInput,
    GradeEstimate,
    ImageStats,
    ResolvedImage,
    WorthGradingResult,
)
from cardgrade.jobs.models import (
    GradeEstimateJob,
    JobFinal,
    JobInput,
    JobStatus,
    StepName,
    StepStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

ResolveImages = Callable[[List[str]], Awaitable[Tuple[List[ResolvedImage], ImageStats]]]
ExtractIdentity = Callable[[List[ResolvedImage]], Awaitable[CardIdentity]]
InvokeConditionModel = Callable[[List[ResolvedImage]], Awaitable[Optional[str]]]
ParseModelOutput = Callable[[Optional[str], ImageStats], ModelParseResult]
ComputePostGradingValue = Callable[[CardInput, GradeEstimate], Awaitable[WorthGradingResult]]


@dataclass
class PipelineDependencies:
    """Collaborators the pipeline calls. Swap any of them in tests."""
    resolve_images: ResolveImages
    extract_identity: ExtractIdentity
    invoke_condition_model: InvokeConditionModel
    parse_model_output: ParseModelOutput = parse_model_output
    compute_post_grading_value: Optional[ComputePostGradingValue] = None
    grade_model_timeout: Optional[float] = None


def _message(exc: BaseException, default: str) -> str:
    return str(exc) or default


def start_step(job: GradeEstimateJob, name: StepName) -> None:
    step = job.steps.get(name)
    step.status = StepStatus.RUNNING
    step.started_at = utcnow()
    step.finished_at = None
    step.ms = None
    step.error = None
    job.touch()


def finish_step(
    job: GradeEstimateJob,
    name: StepName,
    status: StepStatus = StepStatus.DONE,
    error: Optional[str] = None,
) -> None:
    step = job.steps.get(name)
    step.status = status
    step.finished_at = utcnow()
    if step.started_at is not None:
        step.ms = int((step.finished_at - step.started_at).total_seconds() * 1000)
    step.error = error
    job.touch()


def skip_step(job: GradeEstimateJob, name: StepName, reason: str) -> None:
    step = job.steps.get(name)
    now = utcnow()
    step.status = StepStatus.SKIPPED
    step.started_at = step.started_at or now
    step.finished_at = now
    step.ms = None
    step.error = reason
    job.touch()


def fail_job(job: GradeEstimateJob, message: str) -> None:
    job.status = JobStatus.ERROR
    job.error = message
    job.finished_at = utcnow()
    job.touch()


async def run_grade_estimate_job(
    job: GradeEstimateJob,
    job_input: JobInput,
    deps: PipelineDependencies,
) -> None:
    """Run every step of ``job`` in place. Never raises."""
    job.status = JobStatus.RUNNING
    job.started_at = utcnow()
    job.touch()

    # Step 1: images + identity
    start_step(job, StepName.OCR_IDENTITY)
    try:
        images, image_stats = await deps.resolve_images(job_input.image_urls)
        if job_input.card is not None and job_input.card.player_name:
            identity = job_input.card.to_identity()
        else:
            identity = await deps.extract_identity(images)
        job.partial.identity = identity
        finish_step(job, StepName.OCR_IDENTITY)
    except Exception as exc:
        message = _message(exc, "Failed to extract identity")
        logger.warning("Job %s: identity step failed: %s", job.job_id, message)
        finish_step(job, StepName.OCR_IDENTITY, StepStatus.ERROR, message)
        fail_job(job, message)
        return

    # Step 2: condition model
    start_step(job, StepName.GRADE_MODEL)
    model_text: Optional[str] = None
    try:
        call = deps.invoke_condition_model(images)
        if deps.grade_model_timeout:
            model_text = await asyncio.wait_for(call, timeout=deps.grade_model_timeout)
        else:
            model_text = await call
        finish_step(job, StepName.GRADE_MODEL)
    except asyncio.TimeoutError:
        message = f"Condition model timed out after {deps.grade_model_timeout:g}s"
        logger.warning("Job %s: %s, using fallback", job.job_id, message)
        finish_step(job, StepName.GRADE_MODEL, StepStatus.ERROR, message)
    except Exception as exc:
        message = _message(exc, "Failed to analyze condition")
        logger.warning("Job %s: condition model failed, using fallback: %s", job.job_id, message)
        finish_step(job, StepName.GRADE_MODEL, StepStatus.ERROR, message)

    # Step 3: parse + validate
    start_step(job, StepName.PARSE_VALIDATE)
    try:
        if image_stats is None:
            raise RuntimeError("Missing image stats")
        parsed = deps.parse_model_output(model_text, image_stats)
        job.partial.preliminary_range = parsed.preliminary_range
        job.partial.probabilities = parsed.probabilities
        job.partial.evidence = parsed.evidence
        job.final = JobFinal(
            identity=job.partial.identity,
            preliminary_range=parsed.preliminary_range,
            probabilities=parsed.probabilities,
            evidence=parsed.evidence,
            estimate=parsed.estimate,
        )
        finish_step(job, StepName.PARSE_VALIDATE)
    except Exception as exc:
        message = _message(exc, "Failed to parse analysis")
        logger.exception("Job %s: parse step failed", job.job_id)
        finish_step(job, StepName.PARSE_VALIDATE, StepStatus.ERROR, message)
        fail_job(job, message)
        return

    # Step 4: post-grading value (optional)
    await _run_post_grading_value(job, job_input, deps)

    job.status = JobStatus.DONE
    job.finished_at = utcnow()
    job.touch()
    logger.info(
        "Job %s done: status=%s range=%s",
        job.job_id,
        job.final.estimate.analysis_status.value if job.final and job.final.estimate else None,
        job.partial.preliminary_range,
    )


async def _run_post_grading_value(
    job: GradeEstimateJob,
    job_input: JobInput,
    deps: PipelineDependencies,
) -> None:
    start_step(job, StepName.POST_GRADING_VALUE)
    if deps.compute_post_grading_value is None:
        skip_step(job, StepName.POST_GRADING_VALUE, "Skipped: market data not configured")
        return

    estimate = job.final.estimate if job.final else None
    card = job_input.card or CardInput.from_identity(job.partial.identity)
    if estimate is None or estimate.grade_probabilities is None:
        skip_step(job, StepName.POST_GRADING_VALUE, "Skipped: no grade probabilities")
        return
    if card is None or not card.player_name:
        skip_step(job, StepName.POST_GRADING_VALUE, "Skipped: card identity incomplete")
        return

    try:
        result = await deps.compute_post_grading_value(card, estimate)
        job.final.post_grading_value = result
        finish_step(job, StepName.POST_GRADING_VALUE)
    except Exception as exc:
        message = _message(exc, "Market analysis unavailable")
        logger.warning("Job %s: post-grading value failed: %s", job.job_id, message)
        finish_step(job, StepName.POST_GRADING_VALUE, StepStatus.ERROR, message)


def build_default_dependencies(
    price_lookup: Optional[Callable[..., Awaitable[List[float]]]] = None,
) -> PipelineDependencies:
    """Wire the production collaborators from settings.

    Step 4 only runs when a ``price_lookup`` is supplied.
    """
    # Local imports keep the pipeline importable without API credentials.
    from cardgrade.config import settings
    from cardgrade.grading.condition_model import ConditionModelClient
    from cardgrade.grading.identity import IdentityExtractor
    from cardgrade.grading.value import PostGradingValueService
    from cardgrade.io.image_resolver import ImageResolver

    resolver = ImageResolver()
    extractor = IdentityExtractor()
    condition_model = ConditionModelClient()

    post_grading_value = None
    if price_lookup is not None:
        post_grading_value = PostGradingValueService(
            price_lookup,
            fees={"psa": settings.psa_grading_fee, "bgs": settings.bgs_grading_fee},
            window_days=settings.comps_window_days,
            cache_ttl_seconds=settings.cmv_cache_ttl_minutes * 60,
        )

    return PipelineDependencies(
        resolve_images=resolver.resolve,
        extract_identity=extractor.extract,
        invoke_condition_model=condition_model.invoke,
        compute_post_grading_value=post_grading_value,
        grade_model_timeout=settings.grade_model_timeout_seconds,
    )
