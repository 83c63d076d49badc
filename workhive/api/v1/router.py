from fastapi import APIRouter

from workhive.api.v1.admin import router as admin_router
from workhive.api.v1.disputes import router as disputes_router
from workhive.api.v1.projects import router as projects_router

v1_router = APIRouter()

v1_router.include_router(projects_router)
v1_router.include_router(disputes_router)
v1_router.include_router(admin_router)
