"""Snapshot sources: one async accessor per operational domain.

Each source wraps a synchronous ``app.db`` read in ``asyncio.to_thread`` and
returns a tagged record (or None when nothing is uploaded). Sources raise on
failure; the assembler isolates them from one another.
"""

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any

from app.core.calendar_day import app_timezone, utc_now
from app.core.schemas_snapshot import (
    AgencyPortfolio,
    CalendarEvent,
    CJIAReport,
    DelayedProject,
    GCAAReport,
    GPLDaily,
    GPLKpis,
    GWIComplaints,
    GWIInsight,
    GWIReport,
    Portfolio,
    TaskItem,
)
from app.db import agency_reports, calendar_events, projects, tasks

CALENDAR_WEEK_DAYS = 7

# project_status values as stored upstream
STATUS_IN_PROGRESS = {"IN_PROGRESS", "ONGOING"}
STATUS_DELAYED = {"DELAYED"}
STATUS_COMPLETE = {"COMPLETE", "COMPLETED"}
STATUS_NOT_STARTED = {"NOT_STARTED", "PLANNED"}


@dataclass(frozen=True)
class SnapshotSource:
    """A named, independently failable accessor."""

    name: str
    label: str
    fetch: Callable[[], Awaitable[Any]]


def summarize_portfolio(rows: list[dict[str, Any]]) -> Portfolio:
    """Fold project rows into status and per-agency totals."""
    by_agency: OrderedDict[str, AgencyPortfolio] = OrderedDict()
    summary = Portfolio()

    for row in rows:
        status = (row.get("project_status") or "").upper()
        value = float(row.get("contract_value") or 0)
        agency = row.get("sub_agency") or "Unknown"

        summary.total_projects += 1
        summary.total_value += value
        if status in STATUS_IN_PROGRESS:
            summary.in_progress += 1
        elif status in STATUS_DELAYED:
            summary.delayed += 1
        elif status in STATUS_COMPLETE:
            summary.complete += 1
        elif status in STATUS_NOT_STARTED:
            summary.not_started += 1

        entry = by_agency.setdefault(agency, AgencyPortfolio(agency=agency))
        entry.total += 1
        entry.total_value += value
        if status in STATUS_DELAYED:
            entry.delayed += 1

    summary.agencies = sorted(by_agency.values(), key=lambda a: a.total_value, reverse=True)
    return summary


async def fetch_gpl_daily() -> GPLDaily | None:
    row = await asyncio.to_thread(agency_reports.get_latest_gpl_daily)
    return GPLDaily.model_validate(row) if row else None


async def fetch_gpl_kpis() -> GPLKpis | None:
    row = await asyncio.to_thread(agency_reports.get_latest_gpl_kpis)
    return GPLKpis.model_validate(row) if row else None


async def fetch_gwi_report() -> GWIReport | None:
    row = await asyncio.to_thread(agency_reports.get_latest_gwi_report)
    return GWIReport.model_validate(row) if row else None


async def fetch_gwi_insights() -> GWIInsight | None:
    row = await asyncio.to_thread(agency_reports.get_latest_gwi_insight)
    return GWIInsight.from_row(row) if row else None


async def fetch_gwi_complaints() -> GWIComplaints | None:
    row = await asyncio.to_thread(agency_reports.get_latest_gwi_complaints)
    return GWIComplaints.from_row(row) if row else None


async def fetch_cjia_report() -> CJIAReport | None:
    row = await asyncio.to_thread(agency_reports.get_latest_cjia_report)
    return CJIAReport.model_validate(row) if row else None


async def fetch_gcaa_report() -> GCAAReport | None:
    row = await asyncio.to_thread(agency_reports.get_latest_gcaa_report)
    return GCAAReport.model_validate(row) if row else None


async def fetch_portfolio() -> Portfolio:
    rows = await asyncio.to_thread(projects.list_projects)
    return summarize_portfolio(rows)


async def fetch_delayed_projects() -> list[DelayedProject]:
    rows = await asyncio.to_thread(projects.list_delayed_projects)
    return [DelayedProject.model_validate(r) for r in rows]


async def fetch_tasks() -> list[TaskItem]:
    rows = await asyncio.to_thread(tasks.list_open_tasks)
    return [TaskItem.model_validate(r) for r in rows]


def _today_bounds(now: datetime) -> tuple[datetime, datetime]:
    zone = app_timezone()
    local_day = now.astimezone(zone).date()
    start = datetime.combine(local_day, time.min, tzinfo=zone)
    return start, start + timedelta(days=1)


async def fetch_calendar_today() -> list[CalendarEvent]:
    start, end = _today_bounds(utc_now())
    rows = await asyncio.to_thread(calendar_events.list_events_between, start.isoformat(), end.isoformat())
    return [CalendarEvent.model_validate(r) for r in rows]


async def fetch_calendar_week() -> list[CalendarEvent]:
    # The 7 operator days after today; today's events come from fetch_calendar_today
    _, start = _today_bounds(utc_now())
    end = start + timedelta(days=CALENDAR_WEEK_DAYS)
    rows = await asyncio.to_thread(calendar_events.list_events_between, start.isoformat(), end.isoformat())
    return [CalendarEvent.model_validate(r) for r in rows]


def default_sources() -> list[SnapshotSource]:
    """Every production snapshot source, in rendering order."""
    return [
        SnapshotSource("gwi_report", "GWI monthly report", fetch_gwi_report),
        SnapshotSource("gwi_insights", "GWI AI insights", fetch_gwi_insights),
        SnapshotSource("gwi_complaints", "GWI weekly complaints", fetch_gwi_complaints),
        SnapshotSource("gpl_daily", "GPL daily report", fetch_gpl_daily),
        SnapshotSource("gpl_kpis", "GPL monthly KPIs", fetch_gpl_kpis),
        SnapshotSource("cjia_report", "CJIA monthly report", fetch_cjia_report),
        SnapshotSource("gcaa_report", "GCAA monthly report", fetch_gcaa_report),
        SnapshotSource("portfolio", "Project portfolio", fetch_portfolio),
        SnapshotSource("delayed_projects", "Delayed projects", fetch_delayed_projects),
        SnapshotSource("tasks", "Task list", fetch_tasks),
        SnapshotSource("calendar_today", "Today's calendar", fetch_calendar_today),
        SnapshotSource("calendar_week", "This week's calendar", fetch_calendar_week),
    ]
