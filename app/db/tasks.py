"""Database reads for operator tasks."""

from typing import Any

from app.db.supabase_client import get_supabase


def list_open_tasks() -> list[dict[str, Any]]:
    """
    List tasks that are not done, soonest due first.

    Returns:
        List of task dicts (title, status, due_date, agency)
    """
    supabase = get_supabase()

    response = (
        supabase.table("tasks")
        .select("id, title, status, due_date, agency")
        .neq("status", "Done")
        .order("due_date")
        .execute()
    )
    return response.data or []
