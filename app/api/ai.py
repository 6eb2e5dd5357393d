"""AI assistant API endpoints: streaming answers, budget, usage, snapshots."""

import asyncio
import secrets

from fastapi import APIRouter, Header, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import AliasChoices, BaseModel, Field

from app.core.ai_services import (
    get_answer_streamer,
    get_budget_tracker,
    get_context_assembler,
    get_response_cache,
)
from app.core.calendar_day import day_key, utc_now
from app.core.config import get_settings
from app.core.context_engine import build_metric_snapshot
from app.core.logging import get_logger
from app.core.rate_limiter import check_chat_rate_limit, get_chat_rate_limit_stats
from app.core.schemas_ai import AnswerRequest, HistoryMessage
from app.core.token_budget import TokenBudgetStatus, get_usage_stats
from app.db.ai_metric_snapshot import get_metric_snapshot, upsert_metric_snapshot

logger = get_logger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    """Request to ask the AI assistant a question."""

    question: str = Field(..., validation_alias=AliasChoices("question", "message"))
    current_page: str = Field(default="/", validation_alias=AliasChoices("current_page", "currentPage"))
    session_id: str = Field(default="anonymous", validation_alias=AliasChoices("session_id", "sessionId"))
    force_deep: bool = Field(default=False, validation_alias=AliasChoices("force_deep", "forceDeep"))
    conversation_history: list[HistoryMessage] = Field(
        default_factory=list,
        validation_alias=AliasChoices("conversation_history", "conversationHistory"),
    )


@router.post("/chat")
async def chat(body: ChatRequest, request: Request) -> StreamingResponse:
    """
    Answer a question as a Server-Sent Events stream.

    Events: meta → text* → done, or error in place of done.
    """
    if not body.question.strip():
        raise HTTPException(status_code=400, detail="Question is required")

    check_chat_rate_limit(body.session_id)

    settings = get_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise HTTPException(
            status_code=500,
            detail="Anthropic API key not configured. Please set ANTHROPIC_API_KEY in environment.",
        )

    answer_request = AnswerRequest(
        question=body.question.strip(),
        current_page=body.current_page or "/",
        session_id=body.session_id,
        force_deep=body.force_deep,
        conversation_history=body.conversation_history,
    )
    stats = get_chat_rate_limit_stats(body.session_id)

    return StreamingResponse(
        get_answer_streamer().stream(answer_request, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
            "X-Rate-Limit-Remaining": str(stats["tokens_remaining"]),
        },
    )


@router.get("/budget", response_model=TokenBudgetStatus)
async def get_budget() -> TokenBudgetStatus:
    """Today's token spend and the tier cap it implies."""
    return get_budget_tracker().current_status()


@router.get("/usage")
async def get_usage(days: int = Query(7, ge=1, le=30, description="Days of history")) -> dict:
    """Per-day token usage by tier with cache hit share."""
    try:
        return await get_usage_stats(days)
    except Exception as e:
        logger.error(f"Failed to load usage stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load usage stats") from e


@router.post("/context/invalidate")
async def invalidate_context() -> dict:
    """Drop the cached context snapshot after underlying records change."""
    get_context_assembler().invalidate()
    return {"ok": True}


@router.get("/snapshot")
async def get_snapshot() -> dict:
    """Today's structured metric snapshot, built and stored on first request."""
    today = day_key()
    try:
        existing = await asyncio.to_thread(get_metric_snapshot, today)
    except Exception as e:
        logger.warning(f"Metric snapshot lookup failed: {e}")
        existing = None

    if existing:
        return {"snapshot_date": today, "snapshot": existing.get("snapshot_data") or {}, "precomputed": True}

    metrics = await _build_and_store_snapshot(today)
    return {"snapshot_date": today, "snapshot": metrics, "precomputed": False}


async def _build_and_store_snapshot(snapshot_date: str) -> dict:
    assembler = get_context_assembler()
    snapshot = await assembler.assemble("/")
    metrics = build_metric_snapshot(snapshot)
    try:
        await asyncio.to_thread(upsert_metric_snapshot, snapshot_date, metrics, utc_now().isoformat())
    except Exception as e:
        logger.error(f"Failed to store metric snapshot for {snapshot_date}: {e}")
    return metrics


def _check_cron_secret(authorization: str | None) -> None:
    secret = get_settings().CRON_SECRET
    if not secret:
        return
    expected = f"Bearer {secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/precompute-daily")
async def precompute_daily(authorization: str | None = Header(None)) -> dict:
    """
    Daily maintenance: refresh the metric snapshot and sweep expired answers.

    Requires ``Authorization: Bearer <CRON_SECRET>`` when CRON_SECRET is set.
    """
    _check_cron_secret(authorization)

    today = day_key()
    get_context_assembler().invalidate()
    metrics = await _build_and_store_snapshot(today)
    removed = await get_response_cache().sweep_expired()

    logger.info(f"Daily precompute complete: date={today}, cache_cleaned={removed}")
    return {
        "ok": True,
        "snapshot_date": today,
        "cache_cleaned": removed,
        "gaps": metrics.get("gaps", []),
    }
