"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed today's token spend on startup; drain usage writes on shutdown."""
    from app.core.ai_services import get_budget_tracker

    try:
        tracker = get_budget_tracker()
    except Exception as e:
        logger.error(f"AI budget tracker unavailable at startup: {e}")
        tracker = None

    if tracker is not None:
        await tracker.hydrate_from_store()

    yield

    if tracker is not None:
        await tracker.flush()


app = FastAPI(
    title="Ministry AI Engine",
    description="Tiered, cached, budget-aware AI answers over ministry operations data",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
