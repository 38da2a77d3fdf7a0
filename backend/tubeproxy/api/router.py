"""API router aggregation."""
from fastapi import APIRouter

from tubeproxy.api.endpoints import jobs, maintenance, videos

api_router = APIRouter()

api_router.include_router(videos.router, tags=["videos"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(maintenance.router, tags=["maintenance"])
