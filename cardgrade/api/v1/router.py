"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from cardgrade.api.v1.health import router as health_router
from cardgrade.api.v1.grade_estimate import router as grade_estimate_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(grade_estimate_router, tags=["grade-estimate"])
