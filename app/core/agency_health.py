"""Per-agency health scoring.

Each agency starts from a neutral baseline, gains or loses fixed increments
as its signals cross configured bands, and is clamped to a 0-10 range. An
agency with nothing uploaded gets ``score=None`` ("No Data"), which is never
confused with a reported score of 0.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field

from app.core.schemas_snapshot import CJIAReport, GCAAReport, GPLDaily, GPLKpis, GWIReport

NO_DATA_LABEL = "No Data"


class HealthScore(BaseModel):
    """Derived health of one monitored agency."""

    agency: str
    score: float | None = Field(default=None, description="0-10, None when nothing reported")
    label: str
    breakdown: str = ""

    @property
    def has_data(self) -> bool:
        return self.score is not None

    def display(self) -> str:
        if self.score is None:
            return f"{self.agency}: {self.label} — {self.breakdown}"
        return f"{self.agency}: {self.score:g}/10 ({self.label}) — {self.breakdown}"


@dataclass(frozen=True)
class HealthThresholds:
    """Health scoring policy: baseline, clamp range, label bands and per-signal bands."""

    baseline: float = 5.0
    min_score: float = 0.0
    max_score: float = 10.0

    # (min score, label), evaluated high to low
    label_bands: tuple[tuple[float, str], ...] = (
        (8.0, "Strong"),
        (6.0, "Adequate"),
        (4.0, "Concerning"),
        (2.0, "Poor"),
    )
    lowest_label: str = "Critical"

    # GPL
    gpl_reserve_strong_pct: float = 20.0
    gpl_reserve_ok_pct: float = 10.0
    gpl_reserve_critical_pct: float = 5.0
    gpl_availability_good_pct: float = 70.0
    gpl_availability_poor_pct: float = 50.0
    gpl_suppressed_high_mw: float = 20.0
    gpl_collection_good_pct: float = 95.0
    gpl_collection_poor_pct: float = 85.0
    gpl_collection_kpi: str = "Collection Rate %"

    # GWI
    gwi_resolution_strong_pct: float = 90.0
    gwi_resolution_ok_pct: float = 75.0
    gwi_resolution_poor_pct: float = 60.0
    gwi_timeline_good_pct: float = 80.0
    gwi_timeline_poor_pct: float = 50.0
    gwi_collections_good_pct: float = 100.0
    gwi_collections_poor_pct: float = 80.0

    # CJIA
    cjia_on_time_strong_pct: float = 85.0
    cjia_on_time_ok_pct: float = 70.0

    # GCAA
    gcaa_compliance_strong_pct: float = 90.0
    gcaa_compliance_ok_pct: float = 75.0
    gcaa_incidents_high: int = 5


DEFAULT_THRESHOLDS = HealthThresholds()


def health_label(score: float, thresholds: HealthThresholds = DEFAULT_THRESHOLDS) -> str:
    for floor, label in thresholds.label_bands:
        if score >= floor:
            return label
    return thresholds.lowest_label


def _finish(agency: str, score: float, parts: list[str], thresholds: HealthThresholds) -> HealthScore:
    clamped = max(thresholds.min_score, min(thresholds.max_score, score))
    return HealthScore(
        agency=agency,
        score=clamped,
        label=health_label(clamped, thresholds),
        breakdown=", ".join(parts) if parts else "Limited data available",
    )


def _no_data(agency: str) -> HealthScore:
    return HealthScore(agency=agency, score=None, label=NO_DATA_LABEL, breakdown=f"No {agency} data uploaded")


def compute_gpl_health(
    daily: GPLDaily | None,
    kpis: GPLKpis | None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> HealthScore:
    """Score GPL from reserve margin, unit availability, suppressed demand and collections."""
    if daily is None or daily.summary is None:
        return _no_data("GPL")

    t = thresholds
    summary = daily.summary
    score = t.baseline
    parts: list[str] = []

    reserve = summary.reserve_capacity_mw or 0.0
    peak = summary.expected_peak_demand_mw or 1.0
    reserve_pct = reserve / peak * 100
    if reserve_pct >= t.gpl_reserve_strong_pct:
        score += 2
    elif reserve_pct >= t.gpl_reserve_ok_pct:
        score += 1
    elif reserve_pct < t.gpl_reserve_critical_pct:
        score -= 2
    else:
        score -= 1
    parts.append(f"Reserve Margin {reserve_pct:.1f}%")

    total_units = daily.total_units
    online_units = daily.units_online
    availability = online_units / total_units * 100 if total_units > 0 else 0.0
    if availability >= t.gpl_availability_good_pct:
        score += 1
    elif availability < t.gpl_availability_poor_pct:
        score -= 2
    else:
        score -= 1
    parts.append(f"{online_units}/{total_units} units online")

    suppressed = summary.evening_peak_suppressed_mw or 0.0
    if suppressed == 0:
        score += 1
    elif suppressed > t.gpl_suppressed_high_mw:
        score -= 1
    if suppressed > 0:
        parts.append(f"{suppressed:.1f}MW suppressed")

    collection = kpis.kpis.get(t.gpl_collection_kpi) if kpis else None
    if collection is not None:
        if collection >= t.gpl_collection_good_pct:
            score += 1
        elif collection < t.gpl_collection_poor_pct:
            score -= 1
        parts.append(f"Collection {collection:.1f}%")

    return _finish("GPL", score, parts, t)


def compute_gwi_health(
    report: GWIReport | None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> HealthScore:
    """Score GWI from complaint resolution, timeliness, collections and profit."""
    if report is None:
        return _no_data("GWI")

    t = thresholds
    cs = report.customer_service_data
    coll = report.collections_data
    fin = report.financial_data
    score = t.baseline
    parts: list[str] = []

    resolution = cs.resolution_rate_pct or 0.0
    if resolution >= t.gwi_resolution_strong_pct:
        score += 2
    elif resolution >= t.gwi_resolution_ok_pct:
        score += 1
    elif resolution < t.gwi_resolution_poor_pct:
        score -= 2
    else:
        score -= 1
    parts.append(f"Resolution {resolution:g}%")

    timeline = cs.within_timeline_pct or 0.0
    if timeline >= t.gwi_timeline_good_pct:
        score += 1
    elif timeline < t.gwi_timeline_poor_pct:
        score -= 1
    parts.append(f"Within Timeline {timeline:g}%")

    collections = coll.total_collections or 0.0
    billings = coll.total_billings or 1.0
    ratio = collections / billings * 100
    if ratio >= t.gwi_collections_good_pct:
        score += 1
    elif ratio < t.gwi_collections_poor_pct:
        score -= 1
    parts.append(f"Collections ${collections / 1e6:.0f}M")

    profit = fin.net_profit or 0.0
    profit_budget = fin.net_profit_budget or 1.0
    if profit >= profit_budget:
        score += 1
    elif profit < 0:
        score -= 2

    return _finish("GWI", score, parts, t)


def compute_cjia_health(
    report: CJIAReport | None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> HealthScore:
    """Score CJIA from on-time performance; passenger volume is informational."""
    if report is None:
        return _no_data("CJIA")

    t = thresholds
    score = t.baseline
    parts: list[str] = []

    passengers = report.passengers
    if passengers > 0:
        parts.append(f"{passengers / 1000:.1f}K passengers")

    on_time = report.operations_data.on_time_performance_pct or 0.0
    if on_time > 0:
        if on_time >= t.cjia_on_time_strong_pct:
            score += 2
        elif on_time >= t.cjia_on_time_ok_pct:
            score += 1
        else:
            score -= 1
        parts.append(f"On-time {on_time:g}%")

    return _finish("CJIA", score, parts, t)


def compute_gcaa_health(
    report: GCAAReport | None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> HealthScore:
    """Score GCAA from compliance rate and incident count."""
    if report is None:
        return _no_data("GCAA")

    t = thresholds
    score = t.baseline
    parts: list[str] = []

    compliance = report.compliance_data.compliance_rate_pct or 0.0
    if compliance > 0:
        if compliance >= t.gcaa_compliance_strong_pct:
            score += 2
        elif compliance >= t.gcaa_compliance_ok_pct:
            score += 1
        else:
            score -= 1
        parts.append(f"Compliance {compliance:g}%")

    inspections = report.inspection_data.total_inspections or 0
    if inspections > 0:
        parts.append(f"{inspections} inspections")

    incidents = report.incident_data.total_incidents or 0
    if incidents == 0:
        score += 1
    elif incidents > t.gcaa_incidents_high:
        score -= 1
    if incidents > 0:
        parts.append(f"{incidents} incidents")

    return _finish("GCAA", score, parts, t)
