"""FastAPI API endpoints under /api.

Endpoint groups: health, story generation. Generation is stateless: each
request runs the two-phase build and returns the whole tree; nothing is
stored server-side.
"""

from fastapi import APIRouter

from .health import router as health_router
from .stories import router as stories_router

router = APIRouter()
router.include_router(health_router)
router.include_router(stories_router)
