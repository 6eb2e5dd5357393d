"""Daily AI token budget tracking and tier capping.

Spend is counted in deep-equivalent weighted tokens (each tier's tokens are
scaled by its cost weight). The counter is process-wide, resets at the
operator's midnight, and is seeded from ``ai_usage_log`` on startup so a
restart does not forget the day's spend. Usage rows are written in the
background; a failed write is logged and never reaches the caller.
"""

import asyncio
import threading
from collections import OrderedDict
from datetime import datetime, time, timedelta, tzinfo
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, Field

from app.core.calendar_day import app_timezone, day_key, utc_now
from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.model_router import ModelTier, cap_tier
from app.db import ai_usage_log

logger = get_logger(__name__)

WARNING_EXHAUSTED = "Daily AI budget exhausted. Using Quick mode only."
WARNING_CRITICAL = "AI budget nearly exhausted (95%). Switching to Quick mode."
WARNING_HIGH = "AI budget at 80%. Deep analysis temporarily limited."


class TokenBudgetStatus(BaseModel):
    """Current day's spend against the daily ceiling."""

    used_today: int = Field(..., description="Weighted tokens used today")
    daily_limit: int = Field(..., description="Weighted tokens allowed per day")
    pct: int = Field(..., ge=0, le=100, description="Share of the limit used, 0-100")
    tier_cap: ModelTier = Field(..., description="Most expensive tier currently allowed")
    warning: str | None = Field(default=None, description="Operator-facing budget notice")
    remaining: int = Field(..., description="Weighted tokens left today")


def weights_from_settings(settings: Settings) -> dict[ModelTier, float]:
    return {
        ModelTier.CHEAP: settings.CHEAP_COST_WEIGHT,
        ModelTier.STANDARD: settings.STANDARD_COST_WEIGHT,
        ModelTier.DEEP: settings.DEEP_COST_WEIGHT,
    }


class TokenBudgetTracker:
    """
    Process-wide daily token counter.

    ``record_usage`` is safe under concurrent completions; the day a usage
    is attributed to is the day it is recorded.
    """

    def __init__(
        self,
        daily_limit: int,
        warn_pct: float = 0.80,
        critical_pct: float = 0.95,
        weights: dict[ModelTier, float] | None = None,
        usage_store: Any = ai_usage_log,
        timezone: tzinfo | None = None,
        clock=utc_now,
    ):
        self.daily_limit = daily_limit
        self.warn_pct = warn_pct
        self.critical_pct = critical_pct
        self.weights = weights or {ModelTier.CHEAP: 0.03, ModelTier.STANDARD: 0.1, ModelTier.DEEP: 1.0}
        self.usage_store = usage_store
        self.timezone = timezone or app_timezone()
        self._clock = clock

        self._lock = threading.Lock()
        self._day = day_key(self._clock(), self.timezone)
        self._used = 0.0
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides) -> "TokenBudgetTracker":
        settings = settings or get_settings()
        kwargs = {
            "daily_limit": settings.DAILY_TOKEN_BUDGET,
            "warn_pct": settings.BUDGET_WARN_PCT,
            "critical_pct": settings.BUDGET_CRITICAL_PCT,
            "weights": weights_from_settings(settings),
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    def weighted(self, tier: ModelTier, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens + output_tokens) * self.weights.get(tier, 1.0)

    def _roll(self) -> None:
        # Caller holds the lock
        today = day_key(self._clock(), self.timezone)
        if today != self._day:
            logger.info(f"Token budget rollover: {self._day} → {today}, used {self._used:.0f}")
            self._day = today
            self._used = 0.0

    def record_usage(
        self,
        tier: ModelTier,
        input_tokens: int,
        output_tokens: int,
        *,
        model_id: str = "",
        query_type: str = "general",
        current_page: str = "/",
        session_id: str = "anonymous",
        cached: bool = False,
    ) -> float:
        """
        Add a completed invocation's usage to today's counter.

        Cached replays are logged for statistics but add nothing.

        Returns:
            Weighted tokens added
        """
        added = 0.0 if cached else self.weighted(tier, input_tokens, output_tokens)
        with self._lock:
            self._roll()
            self._used += added

        row = {
            "session_id": session_id,
            "model_tier": tier.value,
            "model_id": model_id,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "weighted_tokens": round(added, 2),
            "query_type": query_type,
            "current_page": current_page,
            "cached": cached,
            "created_at": self._clock().isoformat(),
        }
        self._persist(row)
        return added

    def _persist(self, row: dict[str, Any]) -> None:
        """Write a usage row without blocking the caller. Fire-and-forget."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(row)
            return

        task = loop.create_task(asyncio.to_thread(self._write, row))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _write(self, row: dict[str, Any]) -> None:
        try:
            self.usage_store.insert_usage_row(row)
        except Exception as e:
            # Never fail the answer due to usage logging
            logger.error(f"Failed to log AI usage: {e}")

    async def flush(self) -> None:
        """Wait for pending usage writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def used_today(self) -> float:
        with self._lock:
            self._roll()
            return self._used

    def remaining(self) -> int:
        return max(0, round(self.daily_limit - self.used_today()))

    def current_status(self) -> TokenBudgetStatus:
        """Today's spend and the tier cap it implies."""
        used = self.used_today()
        pct = min(100.0, used / self.daily_limit * 100) if self.daily_limit > 0 else 100.0

        tier_cap = ModelTier.DEEP
        warning = None
        if pct >= 100:
            tier_cap = ModelTier.CHEAP
            warning = WARNING_EXHAUSTED
        elif pct >= self.critical_pct * 100:
            tier_cap = ModelTier.CHEAP
            warning = WARNING_CRITICAL
        elif pct >= self.warn_pct * 100:
            tier_cap = ModelTier.STANDARD
            warning = WARNING_HIGH

        return TokenBudgetStatus(
            used_today=round(used),
            daily_limit=self.daily_limit,
            pct=int(pct),
            tier_cap=tier_cap,
            warning=warning,
            remaining=max(0, round(self.daily_limit - used)),
        )

    def cap_for(self, tier: ModelTier) -> ModelTier:
        """Lower ``tier`` to today's cap; never raises it."""
        return cap_tier(tier, self.current_status().tier_cap)

    def day_start(self) -> datetime:
        local_now = self._clock().astimezone(self.timezone)
        return datetime.combine(local_now.date(), time.min, tzinfo=self.timezone)

    def hydrate(self, rows: list[dict[str, Any]]) -> float:
        """Seed today's counter from persisted usage rows (replaces it)."""
        total = 0.0
        for row in rows:
            if row.get("cached"):
                continue
            if row.get("weighted_tokens") is not None:
                total += float(row["weighted_tokens"])
                continue
            try:
                tier = ModelTier(row.get("model_tier"))
            except ValueError:
                continue
            total += self.weighted(tier, row.get("input_tokens") or 0, row.get("output_tokens") or 0)

        with self._lock:
            self._day = day_key(self._clock(), self.timezone)
            self._used = total
        return total

    async def hydrate_from_store(self) -> float:
        """Best-effort seed from ``ai_usage_log``; failures leave the counter at zero."""
        try:
            rows = await asyncio.to_thread(self.usage_store.list_usage_since, self.day_start().isoformat())
        except Exception as e:
            logger.error(f"Failed to load today's AI usage: {e}")
            return 0.0
        total = self.hydrate(rows)
        logger.info(f"Token budget hydrated: {total:.0f}/{self.daily_limit} weighted tokens used today")
        return total


def summarize_usage(rows: list[dict[str, Any]], timezone: tzinfo | None = None) -> dict[str, Any]:
    """
    Group usage rows per operator day.

    Returns:
        Dict with ``daily`` (per-day tokens by tier, cached and request
        counts) and ``totals`` (tokens, requests, cached_pct, by_tier)
    """
    zone = timezone or app_timezone()
    by_tier_total = {tier.value: 0 for tier in ModelTier}
    by_date: OrderedDict[str, dict[str, int]] = OrderedDict()
    total_tokens = 0
    cached_count = 0

    for row in rows:
        created = row.get("created_at")
        if isinstance(created, str):
            created = date_parser.isoparse(created)
        date_key = day_key(created, zone) if created else "unknown"

        bucket = by_date.setdefault(
            date_key,
            {**{f"{t.value}_tokens": 0 for t in ModelTier}, "cached_count": 0, "total_requests": 0},
        )
        tokens = (row.get("input_tokens") or 0) + (row.get("output_tokens") or 0)
        tier = row.get("model_tier")
        if tier in by_tier_total:
            bucket[f"{tier}_tokens"] += tokens
            by_tier_total[tier] += tokens
        bucket["total_requests"] += 1
        total_tokens += tokens
        if row.get("cached"):
            bucket["cached_count"] += 1
            cached_count += 1

    total_requests = len(rows)
    return {
        "daily": [{"date": d, **counts} for d, counts in by_date.items()],
        "totals": {
            "total_tokens": total_tokens,
            "total_requests": total_requests,
            "cached_pct": round(cached_count / total_requests * 100) if total_requests else 0,
            "by_tier": by_tier_total,
        },
    }


async def get_usage_stats(days: int = 7, usage_store: Any = ai_usage_log) -> dict[str, Any]:
    """Usage statistics for the last ``days`` days."""
    since = utc_now() - timedelta(days=days)
    rows = await asyncio.to_thread(usage_store.list_usage_since, since.isoformat())
    return summarize_usage(rows)
