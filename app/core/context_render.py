"""Rendering of the operational snapshot into grounding text.

``render_sections`` produces the full document as ordered sections (page
dependent detail, bounded later by ``fit_sections``) used by the deep tier;
``render_focused_sections`` the mid-sized document for the standard tier;
``render_summary`` the minimal key-value grounding for the cheap tier.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta, tzinfo

from app.core.agency_health import HealthScore
from app.core.context_budget import ContextSection
from app.core.schemas_snapshot import CalendarEvent, DelayedProject, SnapshotData, TaskItem

PAGE_DESCRIPTIONS: dict[str, str] = {
    "/": "Daily Briefing — overview of tasks, calendar, and alerts",
    "/briefing": "Daily Briefing — overview of tasks, calendar, and alerts",
    "/intel": "Agency Intel Overview — comparison of all agencies",
    "/intel/gpl": "GPL Deep Dive — power generation, stations, KPIs, forecasts",
    "/intel/gwi": "GWI Deep Dive — water utility metrics and financials",
    "/intel/cjia": "CJIA Deep Dive — airport passenger analytics",
    "/intel/gcaa": "GCAA Deep Dive — civil aviation compliance",
    "/projects": "PSIP Project Tracker — infrastructure project oversight",
    "/documents": "Document Vault — uploaded documents and AI analysis",
    "/admin": "Admin Portal — user management and data entry",
    "/calendar": "Calendar — schedule and meetings",
}

UPCOMING_TASK_DAYS = 7


# ============================================================================
# Formatting helpers
# ============================================================================


def format_money(n: float | None, decimals: int = 0) -> str:
    """Compact currency: $950, $12K, $3M, $1.2B."""
    if n is None:
        return "N/A"
    magnitude = abs(n)
    if magnitude >= 1e9:
        return f"${n / 1e9:.{decimals + 1}f}B"
    if magnitude >= 1e6:
        return f"${n / 1e6:.{decimals}f}M"
    if magnitude >= 1e3:
        return f"${n / 1e3:.{decimals}f}K"
    return f"${n:.{decimals}f}"


def format_pct(n: float | None) -> str:
    return "N/A" if n is None else f"{n:.1f}%"


def format_num(n: float | None, decimals: int = 1) -> str:
    return "N/A" if n is None else f"{n:.{decimals}f}"


def _value(n: int | None) -> str:
    return "N/A" if n is None else str(n)


def _signed(n: float) -> str:
    return f"+{n:.0f}" if n > 0 else f"{n:.0f}"


def _month(d: date | None) -> str:
    return d.strftime("%B %Y") if d else "Unknown"


def _clock(dt: datetime, zone: tzinfo) -> str:
    return dt.astimezone(zone).strftime("%I:%M %p").lstrip("0")


def _fields(model) -> str:
    """Render the populated fields of a record as ``key: value`` pairs."""
    pairs = [f"{k.replace('_', ' ')}: {v:g}" if isinstance(v, float) else f"{k.replace('_', ' ')}: {v}"
             for k, v in model.model_dump().items() if v is not None]
    return ", ".join(pairs)


# ============================================================================
# Page predicates
# ============================================================================


def is_projects_page(page: str) -> bool:
    return page == "/projects" or page.startswith("/projects/")


def is_briefing_page(page: str) -> bool:
    return page in ("/", "/briefing")


def is_agency_detail_page(page: str, agency: str) -> bool:
    return page in ("/intel", f"/intel/{agency}")


def page_description(page: str) -> str:
    return PAGE_DESCRIPTIONS.get(page, f"Page: {page}")


# ============================================================================
# Task and calendar partitioning
# ============================================================================


def partition_tasks(tasks: list[TaskItem], today: date) -> dict[str, list[TaskItem]]:
    """Split open tasks into overdue / due_today / due_this_week."""
    horizon = today + timedelta(days=UPCOMING_TASK_DAYS)
    open_tasks = [t for t in tasks if t.status != "Done"]
    return {
        "active": open_tasks,
        "overdue": [t for t in open_tasks if t.due_date and t.due_date < today],
        "due_today": [t for t in open_tasks if t.due_date == today],
        "due_this_week": [t for t in open_tasks if t.due_date and today < t.due_date <= horizon],
    }


def group_events_by_day(events: list[CalendarEvent], zone: tzinfo) -> "OrderedDict[str, list[CalendarEvent]]":
    by_day: OrderedDict[str, list[CalendarEvent]] = OrderedDict()
    for event in events:
        if event.start_time is None:
            continue
        key = event.start_time.astimezone(zone).strftime("%A, %b %d")
        by_day.setdefault(key, []).append(event)
    return by_day


# ============================================================================
# Sections
# ============================================================================


def _health_section(health: list[HealthScore]) -> str:
    lines = ["== AGENCY HEALTH SCORES =="]
    lines.extend(h.display() for h in health)
    return "\n".join(lines)


def _gwi_section(data: SnapshotData, page: str) -> str:
    gwi = data.gwi_report
    if gwi is None:
        lines = ["== GWI — No data uploaded =="]
    else:
        fin = gwi.financial_data
        coll = gwi.collections_data
        cs = gwi.customer_service_data
        proc = gwi.procurement_data
        detail = is_agency_detail_page(page, "gwi")

        rev_budget = fin.total_revenue_budget or 1.0
        rev_var = ((fin.total_revenue or 0.0) - rev_budget) / rev_budget * 100
        op_budget = fin.operating_cost_budget or 1.0
        op_var = ((fin.operating_cost or 0.0) - op_budget) / op_budget * 100

        lines = [
            f"== GWI — LATEST REPORT ({_month(gwi.report_month)}) ==",
            (
                f"Financial: Net Profit {format_money(fin.net_profit)} "
                f"({_signed(fin.net_profit_variance_pct or 0.0)}% vs budget), "
                f"Total Revenue {format_money(fin.total_revenue)} ({_signed(rev_var)}% vs budget), "
                f"Govt Subvention {format_money(fin.govt_subvention)}, "
                f"Operating Cost {format_money(fin.operating_cost)} ({_signed(op_var)}% vs budget), "
                f"Cash at Bank {format_money(fin.cash_at_bank)}, Net Assets {format_money(fin.net_assets)}"
            ),
            (
                f"Collections: Total {format_money(coll.total_collections)}, "
                f"YTD {format_money(coll.ytd_collections)}, On-time {format_pct(coll.on_time_payment_pct)}, "
                f"Active Accounts {coll.active_accounts or 0:,}, "
                f"Receivable {format_money(coll.accounts_receivable)}"
            ),
        ]
        if detail:
            regions = ", ".join(
                f"R{i} {format_money(getattr(coll, f'region_{i}_collections'))}" for i in range(1, 6)
            )
            lines.append(f"  Regional: {regions}")
            lines.append(
                f"  Arrears: 30-day {format_money(coll.arrears_30_days)}, "
                f"60-day {format_money(coll.arrears_60_days)}, 90+ {format_money(coll.arrears_90_plus_days)}"
            )
        lines.append(
            f"Customer Service: Complaints {_value(cs.total_complaints)}, "
            f"Resolved {_value(cs.resolved_complaints)} ({format_pct(cs.resolution_rate_pct)}), "
            f"Within timeline {format_pct(cs.within_timeline_pct)}, "
            f"Unresolved {_value(cs.unresolved_complaints)}, Disconnections {_value(cs.disconnections)}, "
            f"Reconnections {_value(cs.reconnections)}"
        )
        lines.append(
            f"Procurement: Total {format_money(proc.total_purchases)}, "
            f"GOG {format_money(proc.gog_funded)} ({format_pct(proc.gog_funded_pct)}), "
            f"GWI {format_money(proc.gwi_funded)} ({format_pct(proc.gwi_funded_pct)}), "
            f"Major contracts {_value(proc.major_contracts_count)} @ {format_money(proc.major_contracts_value)}, "
            f"Minor {_value(proc.minor_contracts_count)} @ {format_money(proc.minor_contracts_value)}, "
            f"Inventory {format_money(proc.inventory_value)}"
        )
        if detail and data.gwi_insights and data.gwi_insights.executive_summary:
            lines.append(f"\nGWI AI ANALYSIS: {data.gwi_insights.executive_summary}")

    complaints = data.gwi_complaints
    if complaints is not None:
        week = complaints.report_week.strftime("%b %d, %Y") if complaints.report_week else "Unknown"
        lines.append(
            f"\nGWI Weekly Complaints ({week}): Total {_value(complaints.total_complaints)}, "
            f"New {_value(complaints.new_complaints)}, Resolved {_value(complaints.resolved)}"
        )
    return "\n".join(lines)


def _gpl_section(data: SnapshotData, page: str) -> str:
    daily = data.gpl_daily
    if daily is None or daily.summary is None:
        return "== GPL — No data uploaded =="

    s = daily.summary
    report_date = daily.report_date.strftime("%b %d, %Y") if daily.report_date else "Unknown"
    lines = [
        f"== GPL — LATEST DATA ({report_date}) ==",
        (
            f"System: Fossil Capacity {format_num(s.total_fossil_capacity_mw)}MW, "
            f"Peak Demand {format_num(s.expected_peak_demand_mw)}MW, "
            f"Reserve {format_num(s.reserve_capacity_mw)}MW"
        ),
        (
            f"Evening Peak: On-bars {format_num(s.evening_peak_on_bars_mw)}MW, "
            f"Suppressed {format_num(s.evening_peak_suppressed_mw)}MW"
        ),
        (
            f"Renewables: Hampshire {format_num(s.solar_hampshire_mwp)}MWp, "
            f"Prospect {format_num(s.solar_prospect_mwp)}MWp, "
            f"Trafalgar {format_num(s.solar_trafalgar_mwp)}MWp, "
            f"Total {format_num(s.total_renewable_mwp)}MWp"
        ),
    ]

    if daily.stations:
        if is_agency_detail_page(page, "gpl"):
            lines.append("Stations:")
            lines.extend(
                f"  {st.station}: {st.units_online}/{st.total_units} online, "
                f"{format_num(st.total_available_mw)}/{format_num(st.total_derated_capacity_mw)}MW"
                for st in daily.stations
            )
        else:
            lines.append(
                f"Stations: {len(daily.stations)} stations, "
                f"{daily.units_online}/{daily.total_units} units online"
            )

    kpis = data.gpl_kpis
    if kpis and kpis.kpis:
        month = kpis.month.strftime("%b %Y") if kpis.month else ""
        lines.append(f"Monthly KPIs ({month}):")
        lines.extend(f"  {name}: {value:.2f}" for name, value in kpis.kpis.items())

    return "\n".join(lines)


def _cjia_section(data: SnapshotData) -> str:
    cjia = data.cjia_report
    if cjia is None:
        return "== CJIA — No data uploaded =="

    lines = [f"== CJIA — LATEST REPORT ({_month(cjia.report_month)}) =="]
    for title, record in (
        ("Passengers", cjia.passenger_data),
        ("Operations", cjia.operations_data),
        ("Revenue", cjia.revenue_data),
    ):
        rendered = _fields(record)
        if rendered:
            lines.append(f"{title}: {rendered}")
    return "\n".join(lines)


def _gcaa_section(data: SnapshotData) -> str:
    gcaa = data.gcaa_report
    if gcaa is None:
        return "== GCAA — No data uploaded =="

    lines = [f"== GCAA — LATEST REPORT ({_month(gcaa.report_month)}) =="]
    for title, record in (
        ("Compliance", gcaa.compliance_data),
        ("Inspections", gcaa.inspection_data),
        ("Incidents", gcaa.incident_data),
    ):
        rendered = _fields(record)
        if rendered:
            lines.append(f"{title}: {rendered}")
    return "\n".join(lines)


def _delayed_lines(delayed: list[DelayedProject], today: date) -> list[str]:
    lines = []
    for i, p in enumerate(delayed, 1):
        days_overdue = (today - p.project_end_date).days if p.project_end_date else 0
        lines.append(
            f"{i}. {p.project_name or p.project_id} — {p.sub_agency or 'Unknown'} — "
            f"{max(days_overdue, 0)} days overdue — {format_money(p.contract_value)} — "
            f"{p.completion_percent or 0:g}% complete"
        )
    return lines


def _projects_section(data: SnapshotData, page: str, today: date, delayed_limit: int) -> str:
    portfolio = data.portfolio
    if portfolio is None:
        return "== PROJECTS — No data available =="

    lines = [
        "== PROJECTS OVERVIEW ==",
        f"Total: {portfolio.total_projects} projects, {format_money(portfolio.total_value)} portfolio value",
        (
            f"By Status: {portfolio.in_progress} In Progress, {portfolio.delayed} Delayed, "
            f"{portfolio.complete} Complete, {portfolio.not_started} Not Started"
        ),
    ]
    if portfolio.agencies:
        agency_line = ", ".join(
            f"{a.agency} {a.total} ({format_money(a.total_value)}, {a.delayed} delayed)"
            for a in portfolio.agencies
        )
        lines.append(f"By Agency: {agency_line}")

    delayed = data.delayed_projects
    if not is_projects_page(page):
        delayed = delayed[:delayed_limit]
    if delayed:
        lines.append("\nTOP DELAYED PROJECTS (most overdue):")
        lines.extend(_delayed_lines(delayed, today))
    return "\n".join(lines)


def _tasks_section(data: SnapshotData, page: str, today: date) -> str:
    lines = ["== TASKS =="]
    if not data.tasks:
        lines.append("No tasks available (task list may be disconnected)")
        return "\n".join(lines)

    groups = partition_tasks(data.tasks, today)
    active = groups["active"]
    overdue = groups["overdue"]
    due_today = groups["due_today"]
    due_this_week = groups["due_this_week"]

    lines.append(
        f"Total: {len(active)} active tasks, {len(overdue)} overdue, "
        f"{len(due_today)} due today, {len(due_this_week)} due this week"
    )

    by_agency: OrderedDict[str, list[int]] = OrderedDict()
    for task in active:
        counts = by_agency.setdefault(task.agency or "General", [0, 0])
        counts[0] += 1
        if task.due_date and task.due_date < today:
            counts[1] += 1
    lines.append(
        "By Agency: "
        + ", ".join(
            f"{agency} {total}" + (f" ({late} overdue)" if late else "")
            for agency, (total, late) in by_agency.items()
        )
    )

    if overdue:
        lines.append("\nOVERDUE TASKS:")
        for i, t in enumerate(overdue, 1):
            lines.append(
                f"{i}. {t.title} — {t.agency or 'General'} — due {t.due_date.isoformat()} — "
                f"{(today - t.due_date).days} days overdue — {t.status}"
            )

    if due_today:
        lines.append("\nDUE TODAY:")
        for i, t in enumerate(due_today, 1):
            lines.append(f"{i}. {t.title} — {t.agency or 'General'} — {t.status}")

    if is_briefing_page(page) and due_this_week:
        lines.append("\nDUE THIS WEEK:")
        for i, t in enumerate(due_this_week, 1):
            lines.append(
                f"{i}. {t.title} — {t.agency or 'General'} — due {t.due_date.isoformat()} — {t.status}"
            )

    return "\n".join(lines)


def _calendar_section(data: SnapshotData, today: date, zone: tzinfo) -> str:
    lines = ["== CALENDAR =="]
    today_label = today.strftime("%A, %B %d, %Y")

    events = data.calendar_today or []
    if events:
        lines.append(f"Today ({today_label}): {len(events)} events")
        for ev in events:
            if ev.all_day:
                when = "All day"
            elif ev.start_time:
                when = _clock(ev.start_time, zone)
                if ev.end_time:
                    when = f"{when} – {_clock(ev.end_time, zone)}"
            else:
                when = "??"
            location = f" [{ev.location}]" if ev.location else ""
            lines.append(f"- {when}: {ev.title}{location}")
    else:
        lines.append(f"Today ({today_label}): No events")

    by_day = group_events_by_day(data.calendar_week or [], zone)
    if by_day:
        lines.append("This Week:")
        for day, day_events in by_day.items():
            titles = ", ".join(e.title for e in day_events)
            lines.append(f"- {day}: {len(day_events)} events — {titles}")

    return "\n".join(lines)


def _header(local_now: datetime, gaps: list[str], all_failed: bool) -> str:
    lines = [f"=== SYSTEM DATA AS OF {local_now.strftime('%Y-%m-%d %H:%M %Z')} ==="]
    if gaps:
        lines.append(f"\nDATA GAPS: {'; '.join(gaps)}")
    if all_failed:
        lines.append("All data sources are currently unavailable; no operational data could be loaded.")
    return "\n".join(lines)


def _current_page_section(page: str) -> ContextSection:
    return ContextSection(
        "current_page",
        f"== CURRENT CONTEXT ==\nUser is on: {page} — {page_description(page)}",
        priority=0,
        required=True,
    )


def render_sections(
    data: SnapshotData,
    health: list[HealthScore],
    gaps: list[str],
    page: str,
    now: datetime,
    zone: tzinfo,
    delayed_limit: int = 10,
    all_failed: bool = False,
) -> list[ContextSection]:
    """
    Render the full context document as ordered sections.

    Args:
        data: Typed source data (None/empty for failed sources)
        health: Per-agency health scores
        gaps: Human-readable gap descriptions, one per failed source
        page: Page the operator is viewing
        now: Build instant
        zone: Operator time zone
        delayed_limit: Delayed projects listed outside the projects page
        all_failed: Every source failed

    Returns:
        Sections in document order
    """
    local_now = now.astimezone(zone)
    today = local_now.date()

    # Agency pages pull their own section forward when the document is trimmed
    agency_priority = {agency: (1 if page == f"/intel/{agency}" else 5) for agency in ("gpl", "gwi", "cjia", "gcaa")}

    return [
        ContextSection("header", _header(local_now, gaps, all_failed), priority=0, required=True),
        ContextSection("health", _health_section(health), priority=0, required=True),
        ContextSection("gwi", _gwi_section(data, page), priority=agency_priority["gwi"]),
        ContextSection("gpl", _gpl_section(data, page), priority=agency_priority["gpl"]),
        ContextSection("cjia", _cjia_section(data), priority=agency_priority["cjia"]),
        ContextSection("gcaa", _gcaa_section(data), priority=agency_priority["gcaa"]),
        ContextSection(
            "projects",
            _projects_section(data, page, today, delayed_limit),
            priority=1 if is_projects_page(page) else 3,
        ),
        ContextSection("tasks", _tasks_section(data, page, today), priority=2),
        ContextSection("calendar", _calendar_section(data, today, zone), priority=2),
        _current_page_section(page),
    ]


def join_sections(sections: list[ContextSection], omitted: list[str]) -> str:
    blocks = [s.text for s in sections]
    if omitted:
        # Keep the trailer last
        blocks.insert(len(blocks) - 1, f"(Sections omitted for length: {', '.join(omitted)})")
    return "\n\n".join(blocks)


FOCUSED_DELAYED_LIMIT = 5
FOCUSED_EVENTS_LIMIT = 5


def detect_focus_agency(page: str) -> str | None:
    """Agency whose page the operator is on, if any."""
    for agency in ("gpl", "gwi", "cjia", "gcaa"):
        if f"/{agency}" in page:
            return agency
    return None


def _gpl_line(data: SnapshotData) -> str:
    daily = data.gpl_daily
    if daily is None or daily.summary is None:
        return "GPL: No data"
    s = daily.summary
    return (
        f"GPL: Cap {format_num(s.total_fossil_capacity_mw)}MW, Peak {format_num(s.expected_peak_demand_mw)}MW, "
        f"Reserve {format_num(s.reserve_capacity_mw)}MW, {daily.units_online}/{daily.total_units} units"
    )


def _gwi_line(data: SnapshotData) -> str:
    gwi = data.gwi_report
    if gwi is None:
        return "GWI: No data"
    return (
        f"GWI: Profit {format_money(gwi.financial_data.net_profit)}, "
        f"Revenue {format_money(gwi.financial_data.total_revenue)}, "
        f"Resolution {format_pct(gwi.customer_service_data.resolution_rate_pct)}"
    )


def _cjia_line(data: SnapshotData) -> str:
    cjia = data.cjia_report
    if cjia is None:
        return "CJIA: No data"
    return f"CJIA: {cjia.passengers} passengers, On-time {format_pct(cjia.operations_data.on_time_performance_pct)}"


def _gcaa_line(data: SnapshotData) -> str:
    gcaa = data.gcaa_report
    if gcaa is None:
        return "GCAA: No data"
    return (
        f"GCAA: Compliance {format_pct(gcaa.compliance_data.compliance_rate_pct)}, "
        f"Incidents {_value(gcaa.incident_data.total_incidents)}"
    )


def render_focused_sections(
    data: SnapshotData,
    health: list[HealthScore],
    gaps: list[str],
    page: str,
    now: datetime,
    zone: tzinfo,
    all_failed: bool = False,
) -> list[ContextSection]:
    """
    Mid-sized grounding for the standard tier.

    Full detail for the agency whose page is open, one line for every other
    agency, and counts for projects, tasks and today's calendar.
    """
    local_now = now.astimezone(zone)
    today = local_now.date()
    focus = detect_focus_agency(page)

    details = {
        "gpl": (lambda: _gpl_section(data, page), _gpl_line),
        "gwi": (lambda: _gwi_section(data, page), _gwi_line),
        "cjia": (lambda: _cjia_section(data), _cjia_line),
        "gcaa": (lambda: _gcaa_section(data), _gcaa_line),
    }
    sections = [
        ContextSection("header", _header(local_now, gaps, all_failed), priority=0, required=True),
        ContextSection("health", _health_section(health), priority=0, required=True),
    ]
    for agency, (full, line) in details.items():
        if agency == focus:
            sections.append(ContextSection(agency, full(), priority=1))
        else:
            sections.append(ContextSection(agency, line(data), priority=4))

    if data.portfolio is not None:
        p = data.portfolio
        lines = [
            "== PROJECTS ==",
            f"Total: {p.total_projects}, Delayed: {p.delayed}, Value: {format_money(p.total_value)}",
        ]
        if data.delayed_projects and (is_projects_page(page) or focus is None):
            lines.extend(_delayed_lines(data.delayed_projects[:FOCUSED_DELAYED_LIMIT], today))
        sections.append(ContextSection("projects", "\n".join(lines), priority=1 if is_projects_page(page) else 3))

    if data.tasks is not None:
        groups = partition_tasks(data.tasks, today)
        sections.append(
            ContextSection(
                "tasks",
                f"== TASKS: {len(groups['active'])} active, {len(groups['overdue'])} overdue, "
                f"{len(groups['due_today'])} today ==",
                priority=2,
            )
        )

    if data.calendar_today:
        lines = [f"== TODAY: {len(data.calendar_today)} events =="]
        for ev in data.calendar_today[:FOCUSED_EVENTS_LIMIT]:
            when = "All day" if ev.all_day else (_clock(ev.start_time, zone) if ev.start_time else "??")
            lines.append(f"- {when}: {ev.title}")
        sections.append(ContextSection("calendar", "\n".join(lines), priority=2))

    sections.append(_current_page_section(page))
    return sections


def render_summary(
    data: SnapshotData,
    health: list[HealthScore],
    gaps: list[str],
    page: str,
    now: datetime,
    zone: tzinfo,
) -> str:
    """Minimal key-value grounding for quick lookups."""
    local_now = now.astimezone(zone)
    today = local_now.date()
    lines = [f"Data as of {local_now.strftime('%Y-%m-%d %H:%M %Z')}"]
    if gaps:
        lines.append(f"Unavailable: {'; '.join(gaps)}")

    for h in health:
        score = "No Data" if h.score is None else f"{h.score:g}/10 {h.label}"
        lines.append(f"{h.agency} health: {score} ({h.breakdown})")

    daily = data.gpl_daily
    if daily and daily.summary:
        s = daily.summary
        lines.append(
            f"GPL: peak {format_num(s.expected_peak_demand_mw)}MW, reserve {format_num(s.reserve_capacity_mw)}MW, "
            f"suppressed {format_num(s.evening_peak_suppressed_mw)}MW, units online {daily.units_online}/{daily.total_units}"
        )
    if data.gpl_kpis and data.gpl_kpis.kpis:
        lines.append("GPL KPIs: " + ", ".join(f"{k} {v:.2f}" for k, v in data.gpl_kpis.kpis.items()))
    if data.gwi_report:
        cs = data.gwi_report.customer_service_data
        coll = data.gwi_report.collections_data
        lines.append(
            f"GWI: resolution {format_pct(cs.resolution_rate_pct)}, collections {format_money(coll.total_collections)}, "
            f"net profit {format_money(data.gwi_report.financial_data.net_profit)}"
        )
    if data.cjia_report:
        ops = data.cjia_report.operations_data
        lines.append(
            f"CJIA: passengers {data.cjia_report.passengers}, on-time {format_pct(ops.on_time_performance_pct)}"
        )
    if data.gcaa_report:
        g = data.gcaa_report
        lines.append(
            f"GCAA: compliance {format_pct(g.compliance_data.compliance_rate_pct)}, "
            f"inspections {_value(g.inspection_data.total_inspections)}, "
            f"incidents {_value(g.incident_data.total_incidents)}"
        )
    if data.portfolio:
        p = data.portfolio
        lines.append(
            f"Projects: {p.total_projects} total ({format_money(p.total_value)}), {p.delayed} delayed, "
            f"{p.in_progress} in progress, {p.complete} complete"
        )
    if data.tasks is not None:
        groups = partition_tasks(data.tasks, today)
        lines.append(
            f"Tasks: {len(groups['active'])} active, {len(groups['overdue'])} overdue, "
            f"{len(groups['due_today'])} due today"
        )
        if groups["overdue"]:
            lines.append("Overdue: " + "; ".join(f"{t.title} (due {t.due_date.isoformat()})" for t in groups["overdue"]))
    if data.calendar_today is not None:
        titles = ", ".join(e.title for e in data.calendar_today) or "none"
        lines.append(f"Today's events: {titles}")

    lines.append(f"Current page: {page}")
    return "\n".join(lines)
