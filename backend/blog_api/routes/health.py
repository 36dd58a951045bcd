"""
Blog API Backend: Liveness Route

Mounted twice by create_app(): unversioned at `/` and inside the v1 group
at `/api/v1/`.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from blog_api import __version__
from blog_api.schemas.liveness import LivenessResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/",
    response_model=LivenessResponse,
    summary="Liveness check",
)
async def liveness() -> LivenessResponse:
    return LivenessResponse(
        message="API is live",
        status="ok",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
    )
