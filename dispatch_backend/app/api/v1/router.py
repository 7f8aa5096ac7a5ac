"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from dispatch_backend.app.api.v1.endpoints import dispatch

router = APIRouter()

# Terminal dispatch board
router.include_router(dispatch.terminal_router)

# Dispatch event lifecycle
router.include_router(dispatch.router)
