"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import ai

router = APIRouter()

# AI assistant: streaming answers, budget, usage, snapshots
router.include_router(ai.router, prefix="/ai", tags=["ai"])
