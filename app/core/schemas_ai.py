"""Pydantic models for the answer pipeline and its SSE protocol."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.core.model_router import ModelTier


class FollowupAction(BaseModel):
    """In-app link suggested by the model."""

    label: str = Field(..., min_length=1)
    route: str = Field(..., min_length=1)


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class CachedAnswer(BaseModel):
    """A previously generated answer, valid until ``expires_at``."""

    text: str
    suggestions: list[str] = Field(default_factory=list)
    actions: list[FollowupAction] = Field(default_factory=list)
    tier: ModelTier
    created_at: datetime
    expires_at: datetime
    usage: TokenUsage = Field(default_factory=TokenUsage)


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AnswerRequest(BaseModel):
    """An operator question about operational state."""

    question: str = Field(..., description="Free-text question")
    current_page: str = Field(default="/", description="Page the operator is viewing")
    session_id: str = Field(default="anonymous", description="Client session for rate limiting")
    force_deep: bool = Field(default=False, description="Skip the cache and ask the deep tier")
    conversation_history: list[HistoryMessage] = Field(default_factory=list)


# ============================================================================
# SSE events
# ============================================================================


class MetaEvent(BaseModel):
    type: Literal["meta"] = "meta"
    tier: ModelTier = Field(..., description="Tier the question was classified as")
    tier_label: str
    tier_used: ModelTier = Field(..., description="Tier actually invoked or served from cache")
    cached: bool
    local: bool = Field(default=False, description="Answered from the metric snapshot without a model call")
    warning: str | None = None


class TextEvent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    tier: ModelTier
    tier_label: str
    tier_used: ModelTier
    cached: bool
    local: bool = False
    usage: TokenUsage | None = None
    remaining: int = Field(..., description="Weighted tokens left in today's budget")
    suggestions: list[str] = Field(default_factory=list)
    actions: list[FollowupAction] = Field(default_factory=list)
    warning: str | None = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str
