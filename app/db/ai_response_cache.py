"""Database operations for the ai_response_cache table."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def get_cached_response(query_hash: str, now_iso: str) -> dict[str, Any] | None:
    """
    Get an unexpired cached answer by key.

    Args:
        query_hash: Cache key digest
        now_iso: Current instant; rows with expires_at <= now are excluded

    Returns:
        Cache row dict or None
    """
    supabase = get_supabase()

    response = (
        supabase.table("ai_response_cache")
        .select("*")
        .eq("query_hash", query_hash)
        .gt("expires_at", now_iso)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def upsert_cached_response(row: dict[str, Any]) -> None:
    """
    Insert or replace a cached answer.

    Uses the UNIQUE(query_hash) constraint for upsert.
    """
    supabase = get_supabase()

    supabase.table("ai_response_cache").upsert(row, on_conflict="query_hash").execute()


def delete_expired_responses(now_iso: str) -> int:
    """
    Delete cached answers whose expiry has passed.

    Args:
        now_iso: Current instant; rows with expires_at <= now are removed

    Returns:
        Number of rows removed
    """
    supabase = get_supabase()

    response = (
        supabase.table("ai_response_cache")
        .delete()
        .lte("expires_at", now_iso)
        .execute()
    )
    removed = len(response.data or [])
    logger.info(f"Removed {removed} expired cached answers")
    return removed
