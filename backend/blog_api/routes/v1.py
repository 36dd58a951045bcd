"""
Blog API Backend: Version 1 Route Group

Everything under /api/v1. create_app() supplies the prefix; resource
routers join the group here.
"""

from fastapi import APIRouter

from blog_api.routes import health

API_V1_PREFIX = "/api/v1"

router = APIRouter()
router.include_router(health.router)
