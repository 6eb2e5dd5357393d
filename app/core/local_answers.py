"""Zero-cost answers to common metric lookups.

Questions that ask for a single figure already present in today's metric
snapshot (see ``build_metric_snapshot``) are answered from the snapshot with
no model call. Rules are ordered ``(pattern, handler)`` pairs; the first rule
whose pattern matches and whose handler finds the figure wins.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.core.context_render import format_money, format_num, format_pct

LOCAL_QUERY_TYPE = "local_answer"

Metrics = dict[str, Any]


@dataclass(frozen=True)
class LocalAnswer:
    """Answer text plus follow-up suggestions."""

    text: str
    suggestions: list[str] = field(default_factory=list)


def _section(metrics: Metrics, name: str) -> dict[str, Any]:
    return metrics.get(name) or {}


def _health_answer(agency: str, suggestions: list[str]) -> Callable[[Metrics], LocalAnswer | None]:
    def handler(metrics: Metrics) -> LocalAnswer | None:
        health = _section(metrics, "health").get(agency) or {}
        if health.get("score") is None:
            return None
        return LocalAnswer(
            text=(
                f"**{agency.upper()} health score: {health['score']:g}/10** ({health.get('label', '')})\n\n"
                f"{health.get('breakdown', '')}"
            ).rstrip(),
            suggestions=suggestions,
        )

    return handler


def _all_health(metrics: Metrics) -> LocalAnswer | None:
    health = _section(metrics, "health")
    if not health:
        return None
    lines = ["## Agency Health Scores", ""]
    for agency in ("gpl", "gwi", "cjia", "gcaa"):
        h = health.get(agency) or {}
        score = "No Data" if h.get("score") is None else f"{h['score']:g}/10 ({h.get('label', '')})"
        lines.append(f"- **{agency.upper()}:** {score}, {h.get('breakdown', '')}".rstrip(", "))
    return LocalAnswer(
        text="\n".join(lines),
        suggestions=["Which agency needs the most attention?", "Show GPL station details", "Show delayed projects"],
    )


def _reserve(metrics: Metrics) -> LocalAnswer | None:
    gpl = _section(metrics, "gpl")
    if gpl.get("reserve_mw") is None:
        return None
    return LocalAnswer(
        text=(
            f"**GPL reserve capacity: {format_num(gpl['reserve_mw'])} MW**\n\n"
            f"Capacity: {format_num(gpl.get('capacity_mw'))} MW | "
            f"Peak demand: {format_num(gpl.get('peak_demand_mw'))} MW"
        ),
        suggestions=["Is this reserve adequate?", "Which stations are offline?", "What is suppressed demand?"],
    )


def _peak_demand(metrics: Metrics) -> LocalAnswer | None:
    gpl = _section(metrics, "gpl")
    if gpl.get("peak_demand_mw") is None:
        return None
    return LocalAnswer(
        text=(
            f"**Expected peak demand: {format_num(gpl['peak_demand_mw'])} MW**\n\n"
            f"Capacity: {format_num(gpl.get('capacity_mw'))} MW | Reserve: {format_num(gpl.get('reserve_mw'))} MW"
        ),
        suggestions=["What is the reserve margin?", "How much suppressed demand?", "GPL station status"],
    )


def _suppressed(metrics: Metrics) -> LocalAnswer | None:
    suppressed = _section(metrics, "gpl").get("suppressed_mw")
    if suppressed is None:
        return None
    if suppressed == 0:
        text = "**No suppressed demand currently.** All load is being served."
    else:
        text = (
            f"**Suppressed demand: {format_num(suppressed)} MW**\n\n"
            "This means some areas may be experiencing load shedding."
        )
    return LocalAnswer(
        text=text,
        suggestions=["What is causing load shedding?", "Which stations are offline?", "GPL health score"],
    )


def _units_online(metrics: Metrics) -> LocalAnswer | None:
    gpl = _section(metrics, "gpl")
    if not gpl.get("total_units"):
        return None
    return LocalAnswer(
        text=f"**{gpl.get('units_online', 0)} of {gpl['total_units']} generation units online**",
        suggestions=["Which stations have units offline?", "What is total capacity?", "GPL health score"],
    )


def _project_count(metrics: Metrics) -> LocalAnswer | None:
    p = _section(metrics, "projects")
    if "total" not in p:
        return None
    return LocalAnswer(
        text=(
            f"**{p['total']} total projects**: {p.get('in_progress', 0)} in progress, {p.get('delayed', 0)} delayed, "
            f"{p.get('complete', 0)} complete, {p.get('not_started', 0)} not started\n\n"
            f"Total portfolio value: **{format_money(p.get('total_value'))}**"
        ),
        suggestions=[
            "Which delayed projects are most critical?",
            "Summarize projects by agency",
            "What is total delayed project value?",
        ],
    )


def _delayed_count(metrics: Metrics) -> LocalAnswer | None:
    p = _section(metrics, "projects")
    if "delayed" not in p:
        return None
    return LocalAnswer(
        text=f"**{p['delayed']} projects are delayed** out of {p.get('total', 0)} total projects.",
        suggestions=[
            "Which delayed projects are most critical?",
            "Show projects by region",
            "Compare agency project execution",
        ],
    )


def _overdue_tasks(metrics: Metrics) -> LocalAnswer | None:
    t = _section(metrics, "tasks")
    if "overdue" not in t:
        return None
    return LocalAnswer(
        text=f"**{t['overdue']} overdue tasks** out of {t.get('active', 0)} active tasks. {t.get('due_today', 0)} due today.",
        suggestions=["Show me my overdue tasks", "What needs my attention today?", "Tasks by agency"],
    )


def _resolution_rate(metrics: Metrics) -> LocalAnswer | None:
    rate = _section(metrics, "gwi").get("resolution_rate_pct")
    if rate is None:
        return None
    return LocalAnswer(
        text=f"**GWI complaint resolution rate: {format_pct(rate)}**",
        suggestions=["Is GWI resolution improving?", "How many GWI complaints?", "GWI health score"],
    )


def _compliance_rate(metrics: Metrics) -> LocalAnswer | None:
    rate = _section(metrics, "gcaa").get("compliance_rate_pct")
    if rate is None:
        return None
    return LocalAnswer(
        text=f"**GCAA compliance rate: {format_pct(rate)}**",
        suggestions=["How many inspections completed?", "Any aviation incidents?", "GCAA health score"],
    )


_ASK = r"^(what('s|s| is)|how('s|s| is))\s+(the\s+)?"
_WHAT = r"(what('s|s| is))\s+(the\s+)?(current\s+)?"

RULES: list[tuple[re.Pattern[str], Callable[[Metrics], LocalAnswer | None]]] = [
    (
        re.compile(_ASK + r"gpl\s+health\s+score", re.I),
        _health_answer(
            "gpl",
            ["Which GPL stations need attention?", "What is the reserve margin?", "Compare all agency health scores"],
        ),
    ),
    (
        re.compile(_ASK + r"gwi\s+health\s+score", re.I),
        _health_answer(
            "gwi",
            ["What is GWI resolution rate?", "Show GWI financial summary", "Compare all agency health scores"],
        ),
    ),
    (
        re.compile(_ASK + r"cjia\s+health\s+score", re.I),
        _health_answer(
            "cjia",
            ["How many passengers this month?", "What is CJIA on-time performance?", "Compare all agency health scores"],
        ),
    ),
    (
        re.compile(_ASK + r"gcaa\s+health\s+score", re.I),
        _health_answer(
            "gcaa",
            ["What is the compliance rate?", "How many incidents this month?", "Compare all agency health scores"],
        ),
    ),
    (re.compile(r"(all|every)\s+(agency\s+)?health\s+score", re.I), _all_health),
    (
        re.compile(r"(what('s|s| is)|how much)\s+(the\s+)?(current\s+)?(reserve|reserve margin|spare capacity)", re.I),
        _reserve,
    ),
    (re.compile(_WHAT + r"(peak\s+demand|expected\s+peak)", re.I), _peak_demand),
    (re.compile(_WHAT + r"suppressed\s+(demand|mw|load)", re.I), _suppressed),
    (re.compile(r"how\s+many\s+(generation\s+)?units?\s+(are\s+)?(online|available|running)", re.I), _units_online),
    (re.compile(r"how\s+many\s+(projects?\s+)?(are\s+)?delayed", re.I), _delayed_count),
    (re.compile(r"how\s+many\s+(total\s+)?projects", re.I), _project_count),
    (re.compile(r"how\s+many\s+(tasks?\s+)?(are\s+)?overdue", re.I), _overdue_tasks),
    (re.compile(_WHAT + r"(gwi\s+)?resolution\s+rate", re.I), _resolution_rate),
    (re.compile(_WHAT + r"(gcaa\s+)?compliance\s+rate", re.I), _compliance_rate),
]


def try_local_answer(question: str, metrics: Metrics | None) -> LocalAnswer | None:
    """
    Answer a single-figure question from the metric snapshot.

    Args:
        question: Raw question text
        metrics: Output of ``build_metric_snapshot`` (stored or live), or None

    Returns:
        LocalAnswer, or None when no rule matches or the figure is missing
    """
    if not metrics:
        return None

    text = (question or "").strip()
    for pattern, handler in RULES:
        if pattern.search(text):
            answer = handler(metrics)
            if answer is not None:
                return answer
    return None


def matches_local_rule(question: str) -> bool:
    """True when some rule could answer the question, before any metrics are loaded."""
    text = (question or "").strip()
    return any(pattern.search(text) for pattern, _ in RULES)
