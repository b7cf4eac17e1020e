from fastapi import APIRouter

from jobsync.api.routes import admin, external_jobs, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(admin.router, prefix="/external-jobs/admin", tags=["admin"])
api_router.include_router(external_jobs.router, prefix="/external-jobs", tags=["external-jobs"])
