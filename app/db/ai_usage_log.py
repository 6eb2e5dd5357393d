"""Database operations for the ai_usage_log table."""

from typing import Any

from app.db.supabase_client import get_supabase

USAGE_COLUMNS = (
    "model_tier, input_tokens, output_tokens, weighted_tokens, cached, created_at"
)


def insert_usage_row(row: dict[str, Any]) -> None:
    """Insert one model-usage record."""
    supabase = get_supabase()

    supabase.table("ai_usage_log").insert(row).execute()


def list_usage_since(since_iso: str) -> list[dict[str, Any]]:
    """
    List usage rows created at or after ``since_iso``, oldest first.

    Args:
        since_iso: Lower bound (ISO timestamp)

    Returns:
        List of usage row dicts
    """
    supabase = get_supabase()

    response = (
        supabase.table("ai_usage_log")
        .select(USAGE_COLUMNS)
        .gte("created_at", since_iso)
        .order("created_at")
        .execute()
    )
    return response.data or []
