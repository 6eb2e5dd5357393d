"""Context assembly: concurrent snapshot gathering for model grounding.

Every snapshot source runs in its own task with its own timeout; a source
that errors or times out becomes a named gap instead of failing the
assembly. The rendered document is held in a single-entry, page-keyed cache
for a short TTL.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime
from time import monotonic
from typing import Any

from app.core.agency_health import (
    DEFAULT_THRESHOLDS,
    HealthScore,
    HealthThresholds,
    compute_cjia_health,
    compute_gcaa_health,
    compute_gpl_health,
    compute_gwi_health,
)
from app.core.calendar_day import app_timezone, local_date, utc_now
from app.core.config import get_settings
from app.core.context_budget import count_tokens, fit_sections
from app.core.context_render import (
    join_sections,
    partition_tasks,
    render_focused_sections,
    render_sections,
    render_summary,
)
from app.core.logging import get_logger
from app.core.schemas_snapshot import SnapshotData, SourceResult
from app.core.snapshot_sources import SnapshotSource, default_sources

logger = get_logger(__name__)


@dataclass
class ContextSnapshot:
    """Rendered grounding for one page, as of ``built_at``."""

    page: str
    text: str
    summary_text: str
    gaps: list[str]
    built_at: datetime
    focused_text: str = ""
    health: list[HealthScore] = field(default_factory=list)
    data: SnapshotData | None = None


class SnapshotCache:
    """
    Single-entry, page-keyed holder for the latest context snapshot.

    Readers get the snapshot only while it is unexpired and built for the
    same page; a rebuild replaces it whole.
    """

    def __init__(self, ttl_seconds: float = 300, clock=monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: tuple[ContextSnapshot, float] | None = None

    def get(self, page: str) -> ContextSnapshot | None:
        with self._lock:
            if self._entry is None:
                return None
            snapshot, stored_at = self._entry
            if snapshot.page != page:
                return None
            if self._clock() - stored_at >= self.ttl_seconds:
                return None
            return snapshot

    def put(self, snapshot: ContextSnapshot) -> None:
        with self._lock:
            self._entry = (snapshot, self._clock())

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None


async def _run_source(source: SnapshotSource, timeout: float) -> SourceResult:
    try:
        value = await asyncio.wait_for(source.fetch(), timeout=timeout)
        return SourceResult(name=source.name, label=source.label, value=value)
    except asyncio.TimeoutError:
        logger.warning(f"Snapshot source {source.name} timed out after {timeout:g}s")
        return SourceResult(name=source.name, label=source.label, error=f"timed out after {timeout:g}s")
    except Exception as e:
        logger.warning(f"Snapshot source {source.name} failed: {e}")
        return SourceResult(name=source.name, label=source.label, error=str(e) or type(e).__name__)


async def gather_sources(sources: list[SnapshotSource], timeout: float) -> dict[str, SourceResult]:
    """
    Run every source concurrently and fold each into a value or a reason.

    Args:
        sources: Sources to invoke
        timeout: Per-source timeout in seconds

    Returns:
        Source name → SourceResult, in source order
    """
    results = await asyncio.gather(*(_run_source(s, timeout) for s in sources))
    return {r.name: r for r in results}


def compute_health(data: SnapshotData, thresholds: HealthThresholds = DEFAULT_THRESHOLDS) -> list[HealthScore]:
    return [
        compute_gpl_health(data.gpl_daily, data.gpl_kpis, thresholds),
        compute_gwi_health(data.gwi_report, thresholds),
        compute_cjia_health(data.cjia_report, thresholds),
        compute_gcaa_health(data.gcaa_report, thresholds),
    ]


class ContextAssembler:
    """Builds (or reuses) the grounding snapshot for a page."""

    def __init__(
        self,
        sources: list[SnapshotSource] | None = None,
        cache: SnapshotCache | None = None,
        thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
        source_timeout: float | None = None,
        max_context_tokens: int | None = None,
        delayed_limit: int | None = None,
        timezone=None,
    ):
        settings = get_settings()
        self.sources = sources if sources is not None else default_sources()
        self.cache = cache or SnapshotCache(settings.CONTEXT_CACHE_TTL_SECONDS)
        self.thresholds = thresholds
        self.source_timeout = source_timeout or settings.SOURCE_TIMEOUT_SECONDS
        self.max_context_tokens = max_context_tokens or settings.MAX_CONTEXT_TOKENS
        self.delayed_limit = delayed_limit or settings.DELAYED_PROJECTS_LIMIT
        self.timezone = timezone or app_timezone()

    async def assemble(self, page: str) -> ContextSnapshot:
        """
        Get the context snapshot for ``page``.

        Returns the cached snapshot when it is live for the same page;
        otherwise gathers every source, scores agency health, renders, and
        replaces the cached entry.
        """
        cached = self.cache.get(page)
        if cached is not None:
            return cached

        results = await gather_sources(self.sources, self.source_timeout)
        snapshot = self.build(page, results)
        self.cache.put(snapshot)
        return snapshot

    def build(self, page: str, results: dict[str, SourceResult], now: datetime | None = None) -> ContextSnapshot:
        """Render a snapshot from already-gathered source results."""
        now = now or utc_now()
        failed = [r for r in results.values() if not r.ok]
        gaps = [f"{r.label} unavailable ({r.error})" for r in failed]

        data = SnapshotData.from_results(results)
        health = compute_health(data, self.thresholds)

        all_failed = bool(results) and len(failed) == len(results)
        sections = render_sections(
            data,
            health,
            gaps,
            page,
            now,
            self.timezone,
            delayed_limit=self.delayed_limit,
            all_failed=all_failed,
        )
        kept, omitted = fit_sections(sections, self.max_context_tokens)
        text = join_sections(kept, omitted)
        focused_kept, focused_omitted = fit_sections(
            render_focused_sections(data, health, gaps, page, now, self.timezone, all_failed=all_failed),
            self.max_context_tokens,
        )
        focused_text = join_sections(focused_kept, focused_omitted)
        summary_text = render_summary(data, health, gaps, page, now, self.timezone)

        logger.info(
            f"Context assembled: page={page}, sources={len(results) - len(failed)}/{len(results)}, "
            f"tokens={count_tokens(text)}, omitted={omitted or '-'}"
        )

        return ContextSnapshot(
            page=page,
            text=text,
            summary_text=summary_text,
            focused_text=focused_text,
            gaps=[r.name for r in failed],
            built_at=now,
            health=health,
            data=data,
        )

    def invalidate(self) -> None:
        """Drop the cached snapshot (underlying records changed)."""
        self.cache.invalidate()


def build_metric_snapshot(snapshot: ContextSnapshot) -> dict[str, Any]:
    """
    Structured daily metrics derived from a context snapshot.

    Returns:
        JSON-serializable dict stored in ai_metric_snapshot
    """
    data = snapshot.data or SnapshotData()
    today = local_date(snapshot.built_at)
    metrics: dict[str, Any] = {
        "generated_at": snapshot.built_at.isoformat(),
        "health": {
            h.agency.lower(): {"score": h.score, "label": h.label, "breakdown": h.breakdown}
            for h in snapshot.health
        },
        "gaps": snapshot.gaps,
    }

    if data.gpl_daily and data.gpl_daily.summary:
        s = data.gpl_daily.summary
        metrics["gpl"] = {
            "report_date": data.gpl_daily.report_date.isoformat() if data.gpl_daily.report_date else None,
            "capacity_mw": s.total_fossil_capacity_mw,
            "peak_demand_mw": s.expected_peak_demand_mw,
            "reserve_mw": s.reserve_capacity_mw,
            "suppressed_mw": s.evening_peak_suppressed_mw,
            "units_online": data.gpl_daily.units_online,
            "total_units": data.gpl_daily.total_units,
            "kpis": data.gpl_kpis.kpis if data.gpl_kpis else {},
        }
    if data.gwi_report:
        gwi = data.gwi_report
        metrics["gwi"] = {
            "resolution_rate_pct": gwi.customer_service_data.resolution_rate_pct,
            "total_collections": gwi.collections_data.total_collections,
            "net_profit": gwi.financial_data.net_profit,
        }
    if data.cjia_report:
        metrics["cjia"] = {
            "passengers": data.cjia_report.passengers,
            "on_time_performance_pct": data.cjia_report.operations_data.on_time_performance_pct,
        }
    if data.gcaa_report:
        gcaa = data.gcaa_report
        metrics["gcaa"] = {
            "compliance_rate_pct": gcaa.compliance_data.compliance_rate_pct,
            "total_inspections": gcaa.inspection_data.total_inspections,
            "total_incidents": gcaa.incident_data.total_incidents,
        }
    if data.portfolio:
        metrics["projects"] = {
            "total": data.portfolio.total_projects,
            "total_value": data.portfolio.total_value,
            "delayed": data.portfolio.delayed,
            "in_progress": data.portfolio.in_progress,
            "complete": data.portfolio.complete,
            "not_started": data.portfolio.not_started,
        }
    if data.tasks is not None:
        groups = partition_tasks(data.tasks, today)
        metrics["tasks"] = {
            "active": len(groups["active"]),
            "overdue": len(groups["overdue"]),
            "due_today": len(groups["due_today"]),
            "due_this_week": len(groups["due_this_week"]),
        }

    return metrics
