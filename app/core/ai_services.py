"""Process-wide AI pipeline components (cached singletons)."""

from functools import lru_cache

from app.core.answer_stream import AnswerStreamer
from app.core.context_engine import ContextAssembler
from app.core.response_cache import ResponseCache
from app.core.token_budget import TokenBudgetTracker


@lru_cache(maxsize=1)
def get_budget_tracker() -> TokenBudgetTracker:
    return TokenBudgetTracker.from_settings()


@lru_cache(maxsize=1)
def get_response_cache() -> ResponseCache:
    return ResponseCache.from_settings()


@lru_cache(maxsize=1)
def get_context_assembler() -> ContextAssembler:
    return ContextAssembler()


@lru_cache(maxsize=1)
def get_answer_streamer() -> AnswerStreamer:
    return AnswerStreamer(
        assembler=get_context_assembler(),
        cache=get_response_cache(),
        budget=get_budget_tracker(),
    )


def reset_services() -> None:
    """Drop every cached component (tests, settings reload)."""
    for getter in (get_budget_tracker, get_response_cache, get_context_assembler, get_answer_streamer):
        getter.cache_clear()
