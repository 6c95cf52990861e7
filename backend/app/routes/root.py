"""
Clipture Backend — Welcome Route
==================================

What:  GET / describes the service and lists its top-level endpoints.
"""

from fastapi import APIRouter

from app import __version__
from app.schemas.envelope import respond_ok

router = APIRouter(tags=["Info"])

SERVICE_TITLE = "Clipture API"
SERVICE_DESCRIPTION = "A modern screen capture and annotation service"
REPOSITORY_URL = "https://github.com/shubhamku044/clipture"


def service_info(endpoints: dict) -> dict:
    return {
        "name": SERVICE_TITLE,
        "description": SERVICE_DESCRIPTION,
        "version": __version__,
        "status": "running",
        "endpoints": endpoints,
    }


@router.get("/", summary="Service information")
async def root():
    info = service_info({
        "health": "/health",
        "db_health": "/db-health",
        "api_v1": "/api/v1",
    })
    info["repository"] = REPOSITORY_URL
    return respond_ok(info)
