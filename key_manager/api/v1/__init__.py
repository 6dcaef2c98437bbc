"""API v1 router."""

from fastapi import APIRouter

from key_manager.api.v1.keys import router as keys_router

router = APIRouter()

router.include_router(keys_router, prefix="/keys", tags=["keys"])
