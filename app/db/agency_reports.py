"""Database reads for agency uploads (GPL, GWI, CJIA, GCAA).

Each accessor returns the latest known state for one domain, or None when
nothing has been uploaded. Errors propagate; callers decide how to degrade.
"""

from typing import Any

from app.db.supabase_client import get_supabase


def _latest_row(table: str, order_column: str) -> dict[str, Any] | None:
    supabase = get_supabase()

    response = (
        supabase.table(table)
        .select("*")
        .order(order_column, desc=True)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None

def get_latest_gpl_daily() -> dict[str, Any] | None:
    """
    Get the latest confirmed GPL daily upload with its summary and stations.

    Returns:
        Dict with summary, stations and report_date, or None if nothing confirmed
    """
    supabase = get_supabase()

    upload_response = (
        supabase.table("gpl_uploads")
        .select("id, report_date")
        .eq("status", "confirmed")
        .order("report_date", desc=True)
        .limit(1)
        .execute()
    )
    if not upload_response.data:
        return None

    upload = upload_response.data[0]

    summary_response = (
        supabase.table("gpl_daily_summary")
        .select("*")
        .eq("upload_id", upload["id"])
        .limit(1)
        .execute()
    )
    stations_response = (
        supabase.table("gpl_daily_stations")
        .select("*")
        .eq("upload_id", upload["id"])
        .order("station")
        .execute()
    )

    return {
        "report_date": upload.get("report_date"),
        "summary": summary_response.data[0] if summary_response.data else None,
        "stations": stations_response.data or [],
    }

def get_latest_gpl_kpis() -> dict[str, Any] | None:
    """
    Get the latest month of GPL KPIs as a name → value mapping.

    Returns:
        Dict with month and kpis, or None if no KPIs uploaded
    """
    supabase = get_supabase()

    latest = _latest_row("gpl_monthly_kpis", "report_month")
    if not latest:
        return None

    month = latest["report_month"]
    response = (
        supabase.table("gpl_monthly_kpis")
        .select("kpi_name, value")
        .eq("report_month", month)
        .execute()
    )

    kpis: dict[str, float] = {}
    for row in response.data or []:
        if row.get("kpi_name") and row.get("value") is not None:
            kpis[row["kpi_name"]] = float(row["value"])

    return {"month": month, "kpis": kpis}

def get_latest_gwi_report() -> dict[str, Any] | None:
    """Latest GWI monthly report."""
    return _latest_row("gwi_monthly_reports", "report_month")

def get_latest_gwi_insight() -> dict[str, Any] | None:
    """Latest AI-derived GWI insight."""
    return _latest_row("gwi_ai_insights", "report_month")

def get_latest_gwi_complaints() -> dict[str, Any] | None:
    """Latest GWI weekly complaints report."""
    return _latest_row("gwi_weekly_reports", "report_week")

def get_latest_cjia_report() -> dict[str, Any] | None:
    """Latest CJIA monthly report."""
    return _latest_row("cjia_monthly_reports", "report_month")

def get_latest_gcaa_report() -> dict[str, Any] | None:
    """Latest GCAA monthly report."""
    return _latest_row("gcaa_monthly_reports", "report_month")
