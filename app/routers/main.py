from fastapi import APIRouter

from app.routers.jobs import jobs_router
from app.routers.shared import shared_router

main_router = APIRouter()

main_router.include_router(jobs_router, prefix="/jobs", tags=["Jobs"])
main_router.include_router(shared_router, tags=["Shared Services"])
