"""Database reads for calendar events."""

from typing import Any

from app.db.supabase_client import get_supabase


def list_events_between(start_iso: str, end_iso: str) -> list[dict[str, Any]]:
    """
    List events starting in ``[start_iso, end_iso)``, ordered by start time.

    Args:
        start_iso: Inclusive lower bound (ISO timestamp)
        end_iso: Exclusive upper bound (ISO timestamp)

    Returns:
        List of event dicts (title, start_time, end_time, all_day, location)
    """
    supabase = get_supabase()

    response = (
        supabase.table("calendar_events")
        .select("id, title, start_time, end_time, all_day, location")
        .gte("start_time", start_iso)
        .lt("start_time", end_iso)
        .order("start_time")
        .execute()
    )
    return response.data or []
