"""Answer streaming engine — tiered Anthropic streaming with response caching.

Per request: classify → budget cap → local answer → cache lookup → (hit:
replay) or (miss: context → history compression → model stream → persist).
Yields SSE events meta → text* → done, or error in place of done.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from pydantic import BaseModel

from app.core.answer_markers import extract_markers
from app.core.calendar_day import app_timezone, day_key, utc_now
from app.core.config import Settings, get_settings
from app.core.context_engine import ContextAssembler, build_metric_snapshot
from app.core.history_compressor import compress_history
from app.core.local_answers import LOCAL_QUERY_TYPE, LocalAnswer, matches_local_rule, try_local_answer
from app.core.logging import get_logger, log_with_context
from app.core.model_router import ModelTier, cap_tier, classify_query
from app.core.response_cache import ResponseCache
from app.core.schemas_ai import (
    AnswerRequest,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    TextEvent,
    TokenUsage,
)
from app.core.system_prompts import get_system_prompt
from app.core.token_budget import TokenBudgetTracker
from app.db import ai_metric_snapshot

logger = get_logger(__name__)

FORCED_DEEP_QUERY_TYPE = "forced_deep"
HISTORY_SUMMARY_QUERY_TYPE = "history_summary"

CONTEXT_UNAVAILABLE = (
    "=== SYSTEM DATA PARTIALLY UNAVAILABLE ===\n"
    "Operational data could not be assembled for this answer. "
    "Say so if the question depends on current figures."
)

DisconnectCheck = Callable[[], Awaitable[bool]]
MetricsLoader = Callable[[str], Awaitable[dict[str, Any] | None]]


def _sse_event(event: BaseModel | dict) -> str:
    """Format an event as an SSE data line."""
    data = event.model_dump(mode="json") if isinstance(event, BaseModel) else event
    return f"data: {json.dumps(data)}\n\n"


def _recent_history(request: AnswerRequest, limit: int) -> list[dict[str, str]]:
    history = [
        {"role": m.role, "content": m.content}
        for m in request.conversation_history[-limit:]
        if m.content and m.content.strip()
    ] if limit > 0 else []
    # Messages must open with a user turn
    while history and history[0]["role"] != "user":
        history.pop(0)
    return history


class AnswerStreamer:
    """Orchestrates one answer per call to ``stream``."""

    def __init__(
        self,
        assembler: ContextAssembler,
        cache: ResponseCache,
        budget: TokenBudgetTracker,
        settings: Settings | None = None,
        client_factory: Callable[[], Any] | None = None,
        metrics_loader: MetricsLoader | None = None,
    ):
        self.assembler = assembler
        self.cache = cache
        self.budget = budget
        self.settings = settings or get_settings()
        self._client_factory = client_factory or self._default_client
        self._metrics_loader = metrics_loader or self._stored_or_live_metrics

    def _default_client(self) -> Any:
        # Import here to avoid loading if API key not set
        from anthropic import AsyncAnthropic

        return AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)

    def model_for(self, tier: ModelTier) -> tuple[str, int]:
        s = self.settings
        return {
            ModelTier.CHEAP: (s.CHEAP_MODEL, s.CHEAP_MAX_TOKENS),
            ModelTier.STANDARD: (s.STANDARD_MODEL, s.STANDARD_MAX_TOKENS),
            ModelTier.DEEP: (s.DEEP_MODEL, s.DEEP_MAX_TOKENS),
        }[tier]

    async def _stored_or_live_metrics(self, page: str) -> dict[str, Any] | None:
        """Today's precomputed metric snapshot, else one derived from live context."""
        row = await asyncio.to_thread(ai_metric_snapshot.get_metric_snapshot, day_key(utc_now(), app_timezone()))
        if row and row.get("snapshot_data"):
            return row["snapshot_data"]
        return build_metric_snapshot(await self.assembler.assemble(page))

    async def _local_answer(self, question: str, page: str) -> LocalAnswer | None:
        if not matches_local_rule(question):
            return None
        try:
            metrics = await self._metrics_loader(page)
        except Exception as e:
            logger.warning(f"Metric snapshot unavailable for local answer: {e}")
            return None
        return try_local_answer(question, metrics)

    async def _context_for(self, tier: ModelTier, page: str) -> str:
        try:
            snapshot = await self.assembler.assemble(page)
        except Exception as e:
            logger.error(f"Context assembly failed for page={page}: {e}", exc_info=True)
            return CONTEXT_UNAVAILABLE
        if tier == ModelTier.CHEAP:
            return snapshot.summary_text
        if tier == ModelTier.STANDARD:
            return snapshot.focused_text or snapshot.text
        return snapshot.text

    async def _messages_for(self, request: AnswerRequest, client: Any, page: str) -> list[dict[str, str]]:
        s = self.settings
        messages = _recent_history(request, s.CHAT_HISTORY_MESSAGES) + [
            {"role": "user", "content": request.question}
        ]
        compressed = await compress_history(
            messages,
            client,
            s.CHEAP_MODEL,
            threshold=s.HISTORY_COMPRESS_THRESHOLD,
            fallback_keep=s.HISTORY_FALLBACK_MESSAGES,
        )
        if compressed.usage is not None:
            # The summary call is billed even if the answer later fails
            self.budget.record_usage(
                ModelTier.CHEAP,
                compressed.usage.input_tokens,
                compressed.usage.output_tokens,
                model_id=s.CHEAP_MODEL,
                query_type=HISTORY_SUMMARY_QUERY_TYPE,
                current_page=page,
                session_id=request.session_id,
            )
        return compressed.messages

    async def stream(
        self,
        request: AnswerRequest,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncGenerator[str, None]:
        """
        Answer one question as a stream of SSE events.

        Args:
            request: Question, page, session and options
            is_disconnected: Async check polled between chunks; when it
                returns True the stream stops and nothing is cached or billed

        Yields:
            SSE-formatted event strings
        """
        question = request.question
        page = request.current_page or "/"

        classification = classify_query(question)
        tier = ModelTier.DEEP if request.force_deep else classification.tier
        query_type = (
            FORCED_DEEP_QUERY_TYPE
            if request.force_deep and classification.tier != ModelTier.DEEP
            else classification.query_type
        )

        status = self.budget.current_status()
        tier_used = cap_tier(tier, status.tier_cap)

        log_with_context(
            logger,
            logging.INFO,
            "Answer routed",
            session_id=request.session_id,
            tier=tier.value,
            tier_used=tier_used.value,
            query_type=query_type,
            page=page,
            budget_pct=status.pct,
        )

        # ── Local answer ─────────────────────────────────────────────
        if not request.force_deep and tier != ModelTier.DEEP:
            local = await self._local_answer(question, page)
            if local is not None:
                yield _sse_event(
                    MetaEvent(
                        tier=tier,
                        tier_label=tier.label,
                        tier_used=ModelTier.CHEAP,
                        cached=False,
                        local=True,
                        warning=status.warning,
                    )
                )
                yield _sse_event(TextEvent(text=local.text))

                self.budget.record_usage(
                    ModelTier.CHEAP,
                    0,
                    0,
                    model_id="local",
                    query_type=LOCAL_QUERY_TYPE,
                    current_page=page,
                    session_id=request.session_id,
                )
                yield _sse_event(
                    DoneEvent(
                        tier=tier,
                        tier_label=tier.label,
                        tier_used=ModelTier.CHEAP,
                        cached=False,
                        local=True,
                        usage=TokenUsage(),
                        remaining=self.budget.remaining(),
                        suggestions=local.suggestions,
                        warning=status.warning,
                    )
                )
                return

        # ── Cache ────────────────────────────────────────────────────
        if not request.force_deep:
            cached = await self.cache.lookup(question, page)
            if cached is not None:
                yield _sse_event(
                    MetaEvent(
                        tier=tier,
                        tier_label=tier.label,
                        tier_used=cached.tier,
                        cached=True,
                        warning=status.warning,
                    )
                )
                yield _sse_event(TextEvent(text=cached.text))

                self.budget.record_usage(
                    cached.tier,
                    0,
                    0,
                    model_id="cache",
                    query_type=query_type,
                    current_page=page,
                    session_id=request.session_id,
                    cached=True,
                )
                yield _sse_event(
                    DoneEvent(
                        tier=tier,
                        tier_label=tier.label,
                        tier_used=cached.tier,
                        cached=True,
                        usage=None,
                        remaining=self.budget.remaining(),
                        suggestions=cached.suggestions,
                        actions=cached.actions,
                        warning=status.warning,
                    )
                )
                return

        yield _sse_event(
            MetaEvent(
                tier=tier,
                tier_label=tier.label,
                tier_used=tier_used,
                cached=False,
                warning=status.warning,
            )
        )

        # ── Model call ───────────────────────────────────────────────
        full_text = ""
        try:
            context = await self._context_for(tier_used, page)
            today = utc_now().astimezone(app_timezone()).strftime("%A, %B %d, %Y")
            system = get_system_prompt(tier_used, today, page, context)
            model, max_tokens = self.model_for(tier_used)

            client = self._client_factory()
            messages = await self._messages_for(request, client, page)
            async with client.messages.stream(
                model=model,
                max_tokens=max_tokens,
                system=system,
                messages=messages,
            ) as stream:
                async for event in stream:
                    if is_disconnected is not None and await is_disconnected():
                        # Leaving the context manager closes the upstream connection
                        logger.info(f"Client disconnected mid-stream: session={request.session_id}")
                        return
                    if getattr(event, "type", None) == "content_block_delta":
                        chunk = getattr(event.delta, "text", None)
                        if chunk:
                            full_text += chunk
                            yield _sse_event(TextEvent(text=chunk))

                final_message = await stream.get_final_message()

            usage = TokenUsage(
                input_tokens=getattr(final_message.usage, "input_tokens", 0) or 0,
                output_tokens=getattr(final_message.usage, "output_tokens", 0) or 0,
            )
        except Exception as e:
            logger.error(f"Error in answer stream: {e}", exc_info=True)
            yield _sse_event(ErrorEvent(error=str(e) or "The AI service failed to answer."))
            return

        # ── Persist ──────────────────────────────────────────────────
        clean_text, suggestions, actions = extract_markers(full_text)

        await self.cache.store(
            question,
            page,
            tier_used,
            clean_text,
            suggestions=suggestions,
            actions=actions,
            usage=usage,
        )
        self.budget.record_usage(
            tier_used,
            usage.input_tokens,
            usage.output_tokens,
            model_id=model,
            query_type=query_type,
            current_page=page,
            session_id=request.session_id,
        )

        yield _sse_event(
            DoneEvent(
                tier=tier,
                tier_label=tier.label,
                tier_used=tier_used,
                cached=False,
                usage=usage,
                remaining=self.budget.remaining(),
                suggestions=suggestions,
                actions=actions,
                warning=status.warning,
            )
        )
