"""Simple in-memory rate limiter for the chat endpoint."""

import threading
import time
from collections import defaultdict
from functools import lru_cache
from typing import Any, Dict, Tuple

from fastapi import HTTPException

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter.

    Tracks requests per key (e.g., chat session) and enforces limits.
    Uses in-memory storage, so limits are per process.
    """

    def __init__(self, requests_per_window: int = 20, window_seconds: float = 3600.0, burst_size: int | None = None):
        """
        Initialize rate limiter.

        Args:
            requests_per_window: Sustained requests allowed per window
            window_seconds: Window length in seconds
            burst_size: Maximum burst size (defaults to requests_per_window)
        """
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.burst_size = burst_size or requests_per_window
        self.refill_rate = requests_per_window / window_seconds  # tokens per second

        self._lock = threading.Lock()
        # key -> (tokens, last_refill_time)
        self._buckets: Dict[str, Tuple[float, float]] = defaultdict(lambda: (float(self.burst_size), time.time()))
        self._request_counts: Dict[str, int] = defaultdict(int)
        self._last_prune = 0.0

    def _refill_bucket(self, key: str) -> None:
        current_tokens, last_refill = self._buckets[key]
        now = time.time()
        new_tokens = min(self.burst_size, current_tokens + (now - last_refill) * self.refill_rate)
        self._buckets[key] = (new_tokens, now)

    def _prune_idle(self, now: float) -> None:
        """Drop keys idle for more than two windows (a full bucket either way)."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        idle = [k for k, (_, last_refill) in self._buckets.items() if now - last_refill > 2 * self.window_seconds]
        for key in idle:
            del self._buckets[key]
            self._request_counts.pop(key, None)
        if idle:
            logger.debug(f"Rate limiter pruned {len(idle)} idle keys")

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Consume ``cost`` tokens for ``key``.

        Returns:
            True if allowed

        Raises:
            HTTPException: 429 if rate limited
        """
        with self._lock:
            self._prune_idle(time.time())
            self._refill_bucket(key)
            current_tokens, last_refill = self._buckets[key]

            if current_tokens >= cost:
                self._buckets[key] = (current_tokens - cost, last_refill)
                self._request_counts[key] += 1
                return True

            retry_after = int((cost - current_tokens) / self.refill_rate) + 1

        logger.warning(
            f"Rate limit exceeded for key: {key}, "
            f"tokens: {current_tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )

    def get_stats(self, key: str) -> Dict[str, Any]:
        with self._lock:
            self._prune_idle(time.time())
            self._refill_bucket(key)
            current_tokens, _ = self._buckets[key]
            return {
                "tokens_remaining": int(current_tokens),
                "burst_size": self.burst_size,
                "requests_per_window": self.requests_per_window,
                "window_seconds": self.window_seconds,
                "total_requests": self._request_counts.get(key, 0),
            }

    def reset(self, key: str | None = None) -> None:
        """Reset one key, or every key when ``key`` is None."""
        with self._lock:
            if key is None:
                self._buckets.clear()
                self._request_counts.clear()
            else:
                self._buckets.pop(key, None)
                self._request_counts.pop(key, None)


@lru_cache(maxsize=1)
def get_chat_rate_limiter() -> RateLimiter:
    """Process-wide chat limiter sized from settings."""
    return RateLimiter(requests_per_window=get_settings().CHAT_RATE_LIMIT_PER_HOUR, window_seconds=3600.0)


def check_chat_rate_limit(session_id: str) -> None:
    """
    Check rate limit for the chat endpoint.

    Raises:
        HTTPException: 429 if rate limited
    """
    get_chat_rate_limiter().check_limit(f"chat:{session_id}")


def get_chat_rate_limit_stats(session_id: str) -> Dict[str, Any]:
    return get_chat_rate_limiter().get_stats(f"chat:{session_id}")
