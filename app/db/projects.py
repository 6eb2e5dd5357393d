"""Database reads for the capital-project portfolio."""

from typing import Any

from app.db.supabase_client import get_supabase

PROJECT_COLUMNS = (
    "project_id, project_name, sub_agency, project_status, "
    "contract_value, completion_percent, project_end_date"
)


def list_projects() -> list[dict[str, Any]]:
    """
    List every tracked project with the fields the portfolio summary reads.

    Returns:
        List of project dicts
    """
    supabase = get_supabase()

    response = supabase.table("projects").select(PROJECT_COLUMNS).execute()
    return response.data or []

def list_delayed_projects() -> list[dict[str, Any]]:
    """
    List delayed projects, highest contract value first.

    Returns:
        List of project dicts with project_status DELAYED
    """
    supabase = get_supabase()

    response = (
        supabase.table("projects")
        .select(PROJECT_COLUMNS)
        .eq("project_status", "DELAYED")
        .order("contract_value", desc=True)
        .execute()
    )
    return response.data or []
