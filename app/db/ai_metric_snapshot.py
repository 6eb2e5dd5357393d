"""Database operations for the ai_metric_snapshot table."""

from typing import Any

from app.db.supabase_client import get_supabase


def get_metric_snapshot(snapshot_date: str) -> dict[str, Any] | None:
    """
    Get the stored metric snapshot for a day.

    Args:
        snapshot_date: YYYY-MM-DD

    Returns:
        Snapshot row dict or None
    """
    supabase = get_supabase()

    response = (
        supabase.table("ai_metric_snapshot")
        .select("*")
        .eq("snapshot_date", snapshot_date)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def upsert_metric_snapshot(snapshot_date: str, snapshot_data: dict[str, Any], updated_at: str) -> None:
    """
    Insert or replace the metric snapshot for a day.

    Uses the UNIQUE(snapshot_date) constraint for upsert.
    """
    supabase = get_supabase()

    supabase.table("ai_metric_snapshot").upsert(
        {
            "snapshot_date": snapshot_date,
            "snapshot_data": snapshot_data,
            "updated_at": updated_at,
        },
        on_conflict="snapshot_date",
    ).execute()
