"""Content-addressed cache of generated answers.

Keys are ``sha256(normalized question | page | YYYY-MM-DD)`` so identical
questions collapse per page per operator day, and keys rotate daily. TTL
depends on tier; a TTL of 0 means the tier is never cached. Every store
failure is logged and degrades to a cache miss.
"""

import asyncio
import hashlib
import re
from datetime import datetime, timedelta, tzinfo
from typing import Any

from dateutil import parser as date_parser
from dateutil import tz

from app.core.calendar_day import app_timezone, day_key, utc_now
from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.model_router import ModelTier
from app.core.schemas_ai import CachedAnswer, FollowupAction, TokenUsage
from app.db import ai_response_cache

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_question(question: str) -> str:
    """Trim, lowercase, collapse whitespace."""
    return _WHITESPACE.sub(" ", (question or "").strip().lower())


def cache_key(question: str, page: str, day: str) -> str:
    """
    Digest identifying a cacheable answer.

    Args:
        question: Raw question text
        page: Page identifier
        day: Operator calendar day (YYYY-MM-DD)

    Returns:
        Hex sha256 digest
    """
    raw = f"{normalize_question(question)}|{page}|{day}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def ttl_hours_from_settings(settings: Settings) -> dict[ModelTier, int]:
    return {
        ModelTier.CHEAP: settings.CACHE_TTL_CHEAP_HOURS,
        ModelTier.STANDARD: settings.CACHE_TTL_STANDARD_HOURS,
        ModelTier.DEEP: settings.CACHE_TTL_DEEP_HOURS,
    }


def _as_datetime(value: Any) -> datetime:
    parsed = value if isinstance(value, datetime) else date_parser.isoparse(value)
    # Stored timestamps without an offset are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz.UTC)
    return parsed


class ResponseCache:
    """Lookup/store/sweep over the ``ai_response_cache`` table."""

    def __init__(
        self,
        backend: Any = ai_response_cache,
        ttl_hours: dict[ModelTier, int] | None = None,
        query_text_max: int = 500,
        timezone: tzinfo | None = None,
    ):
        self.backend = backend
        self.ttl_hours = ttl_hours or {ModelTier.CHEAP: 24, ModelTier.STANDARD: 12, ModelTier.DEEP: 0}
        self.query_text_max = query_text_max
        self.timezone = timezone or app_timezone()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides) -> "ResponseCache":
        settings = settings or get_settings()
        kwargs = {
            "ttl_hours": ttl_hours_from_settings(settings),
            "query_text_max": settings.CACHE_QUERY_TEXT_MAX_CHARS,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    def is_cacheable(self, tier: ModelTier) -> bool:
        return self.ttl_hours.get(tier, 0) > 0

    def key_for(self, question: str, page: str, now: datetime | None = None) -> str:
        return cache_key(question, page, day_key(now or utc_now(), self.timezone))

    async def lookup(self, question: str, page: str, now: datetime | None = None) -> CachedAnswer | None:
        """
        Get a live cached answer for the question on this page today.

        Returns:
            CachedAnswer, or None on miss, expiry, or store failure
        """
        now = now or utc_now()
        key = self.key_for(question, page, now)

        try:
            row = await asyncio.to_thread(self.backend.get_cached_response, key, now.isoformat())
        except Exception as e:
            logger.warning(f"Response cache lookup failed: {e}")
            return None

        if not row:
            return None

        try:
            answer = CachedAnswer(
                text=row["response_text"],
                suggestions=row.get("suggestions") or [],
                actions=row.get("actions") or [],
                tier=ModelTier(row["model_tier"]),
                created_at=_as_datetime(row["created_at"]),
                expires_at=_as_datetime(row["expires_at"]),
                usage=TokenUsage(
                    input_tokens=row.get("usage_input_tokens") or 0,
                    output_tokens=row.get("usage_output_tokens") or 0,
                ),
            )
        except Exception as e:
            logger.warning(f"Discarding malformed cache row {key[:12]}: {e}")
            return None

        # Expired-but-unswept rows are never served
        if answer.expires_at <= now:
            return None
        return answer

    async def store(
        self,
        question: str,
        page: str,
        tier: ModelTier,
        text: str,
        suggestions: list[str] | None = None,
        actions: list[FollowupAction] | None = None,
        usage: TokenUsage | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Upsert an answer under its key. No-op for tiers with TTL 0.

        Returns:
            True if a row was written
        """
        ttl = self.ttl_hours.get(tier, 0)
        if ttl <= 0:
            return False

        now = now or utc_now()
        usage = usage or TokenUsage()
        row = {
            "query_hash": self.key_for(question, page, now),
            "query_text": (question or "")[: self.query_text_max],
            "current_page": page,
            "model_tier": tier.value,
            "response_text": text,
            "suggestions": suggestions or [],
            "actions": [a.model_dump() for a in actions or []],
            "usage_input_tokens": usage.input_tokens,
            "usage_output_tokens": usage.output_tokens,
            "created_at": now.isoformat(),
            "expires_at": (now + timedelta(hours=ttl)).isoformat(),
        }

        try:
            await asyncio.to_thread(self.backend.upsert_cached_response, row)
        except Exception as e:
            logger.warning(f"Response cache store failed: {e}")
            return False
        return True

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """
        Remove rows whose expiry has passed. Idempotent.

        Returns:
            Rows removed (informational; 0 on failure)
        """
        now = now or utc_now()
        try:
            return await asyncio.to_thread(self.backend.delete_expired_responses, now.isoformat())
        except Exception as e:
            logger.error(f"Response cache sweep failed: {e}")
            return 0
