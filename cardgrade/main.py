"""Card grade estimate service - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardgrade.config import settings
from cardgrade.logging_config import setup_logging
from cardgrade.api.v1.router import v1_router
from cardgrade.api.v1.health import router as health_root_router
from cardgrade.api.v1 import grade_estimate as grade_estimate_api
from cardgrade.api.v1 import health as health_api
from cardgrade.grading.pipeline import build_default_dependencies
from cardgrade.jobs.in_process_runner import InProcessJobRunner
from cardgrade.storage.job_store import job_store

# Global dispatcher reference
_dispatcher = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _dispatcher

    setup_logging(settings.log_level)
    print(f"Starting card grade estimate service on port {settings.compute_port}")
    print(f"Condition model: {settings.grade_model} (timeout {settings.grade_model_timeout_seconds:g}s)")
    print(f"Identity model: {settings.identity_model}")
    print(f"Job TTL: {settings.job_ttl_minutes} min")
    if not settings.anthropic_api_key:
        print("  WARNING: ANTHROPIC_API_KEY is not set; model calls will fail")

    # Start job runner
    _dispatcher = InProcessJobRunner(
        store=job_store,
        deps=build_default_dependencies(),
        sweep_interval_seconds=settings.job_sweep_interval_seconds,
    )
    await _dispatcher.start()
    print("Job runner started")

    # Wire dispatcher into API endpoints
    grade_estimate_api.set_dispatcher(_dispatcher)
    health_api.set_dispatcher(_dispatcher)

    yield

    # Shutdown
    print("Shutting down card grade estimate service")
    await _dispatcher.stop()
    job_store.cleanup_expired()


app = FastAPI(
    title="Card Grade Estimate Service",
    description="Asynchronous grade estimation for raw sports trading cards",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow frontend dev server and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
