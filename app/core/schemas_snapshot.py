"""Tagged records for snapshot source data.

Each record carries a ``domain`` discriminator and only the fields health
scoring and context rendering read. Unknown upstream columns are ignored.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ============================================================================
# GPL (power utility)
# ============================================================================


class GPLSummary(_Record):
    total_fossil_capacity_mw: float | None = None
    expected_peak_demand_mw: float | None = None
    reserve_capacity_mw: float | None = None
    evening_peak_on_bars_mw: float | None = None
    evening_peak_suppressed_mw: float | None = None
    solar_hampshire_mwp: float | None = None
    solar_prospect_mwp: float | None = None
    solar_trafalgar_mwp: float | None = None
    total_renewable_mwp: float | None = None


class GPLStation(_Record):
    station: str = "Unknown"
    units_online: int = 0
    total_units: int = 0
    total_available_mw: float | None = None
    total_derated_capacity_mw: float | None = None


class GPLDaily(_Record):
    """Latest confirmed GPL daily upload."""

    domain: Literal["gpl_daily"] = "gpl_daily"
    report_date: date | None = None
    summary: GPLSummary | None = None
    stations: list[GPLStation] = Field(default_factory=list)

    @property
    def units_online(self) -> int:
        return sum(s.units_online for s in self.stations)

    @property
    def total_units(self) -> int:
        return sum(s.total_units for s in self.stations)


class GPLKpis(_Record):
    """Latest month of GPL KPIs keyed by KPI name."""

    domain: Literal["gpl_kpis"] = "gpl_kpis"
    month: date | None = None
    kpis: dict[str, float] = Field(default_factory=dict)


# ============================================================================
# GWI (water utility)
# ============================================================================


class GWIFinancial(_Record):
    net_profit: float | None = None
    net_profit_budget: float | None = None
    net_profit_variance_pct: float | None = None
    total_revenue: float | None = None
    total_revenue_budget: float | None = None
    govt_subvention: float | None = None
    operating_cost: float | None = None
    operating_cost_budget: float | None = None
    cash_at_bank: float | None = None
    net_assets: float | None = None


class GWICollections(_Record):
    total_collections: float | None = None
    total_billings: float | None = None
    ytd_collections: float | None = None
    on_time_payment_pct: float | None = None
    active_accounts: int | None = None
    accounts_receivable: float | None = None
    region_1_collections: float | None = None
    region_2_collections: float | None = None
    region_3_collections: float | None = None
    region_4_collections: float | None = None
    region_5_collections: float | None = None
    arrears_30_days: float | None = None
    arrears_60_days: float | None = None
    arrears_90_plus_days: float | None = None


class GWICustomerService(_Record):
    total_complaints: int | None = None
    resolved_complaints: int | None = None
    resolution_rate_pct: float | None = None
    within_timeline_pct: float | None = None
    unresolved_complaints: int | None = None
    disconnections: int | None = None
    reconnections: int | None = None


class GWIProcurement(_Record):
    total_purchases: float | None = None
    gog_funded: float | None = None
    gog_funded_pct: float | None = None
    gwi_funded: float | None = None
    gwi_funded_pct: float | None = None
    major_contracts_count: int | None = None
    major_contracts_value: float | None = None
    minor_contracts_count: int | None = None
    minor_contracts_value: float | None = None
    inventory_value: float | None = None


class GWIReport(_Record):
    """Latest GWI monthly report."""

    domain: Literal["gwi_report"] = "gwi_report"
    report_month: date | None = None
    financial_data: GWIFinancial = Field(default_factory=GWIFinancial)
    collections_data: GWICollections = Field(default_factory=GWICollections)
    customer_service_data: GWICustomerService = Field(default_factory=GWICustomerService)
    procurement_data: GWIProcurement = Field(default_factory=GWIProcurement)


class GWIInsight(_Record):
    """Latest AI-derived GWI analysis."""

    domain: Literal["gwi_insight"] = "gwi_insight"
    report_month: date | None = None
    executive_summary: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "GWIInsight":
        insight = row.get("insight_json") or {}
        return cls(
            report_month=row.get("report_month"),
            executive_summary=insight.get("executive_summary") if isinstance(insight, dict) else None,
        )


class GWIComplaints(_Record):
    """Latest GWI weekly complaints snapshot."""

    domain: Literal["gwi_complaints"] = "gwi_complaints"
    report_week: date | None = None
    total_complaints: int | None = None
    new_complaints: int | None = None
    resolved: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "GWIComplaints":
        data = row.get("complaints_data") or {}
        return cls.model_validate({**data, "report_week": row.get("report_week")})


# ============================================================================
# CJIA (airport) and GCAA (aviation authority)
# ============================================================================


class CJIAPassengers(_Record):
    total_passengers: int | None = None
    arrivals: int | None = None
    departures: int | None = None


class CJIAOperations(_Record):
    on_time_performance_pct: float | None = None
    aircraft_movements: int | None = None
    total_flights: int | None = None


class CJIARevenue(_Record):
    total_revenue: float | None = None
    aeronautical_revenue: float | None = None
    non_aeronautical_revenue: float | None = None


class CJIAReport(_Record):
    """Latest CJIA monthly report."""

    domain: Literal["cjia_report"] = "cjia_report"
    report_month: date | None = None
    passenger_data: CJIAPassengers = Field(default_factory=CJIAPassengers)
    operations_data: CJIAOperations = Field(default_factory=CJIAOperations)
    revenue_data: CJIARevenue = Field(default_factory=CJIARevenue)

    @property
    def passengers(self) -> int:
        pax = self.passenger_data
        return pax.total_passengers or pax.departures or 0


class GCAACompliance(_Record):
    compliance_rate_pct: float | None = None
    audits_completed: int | None = None
    open_findings: int | None = None


class GCAAInspections(_Record):
    total_inspections: int | None = None
    completed_inspections: int | None = None


class GCAAIncidents(_Record):
    total_incidents: int | None = None
    serious_incidents: int | None = None


class GCAAReport(_Record):
    """Latest GCAA monthly report."""

    domain: Literal["gcaa_report"] = "gcaa_report"
    report_month: date | None = None
    compliance_data: GCAACompliance = Field(default_factory=GCAACompliance)
    inspection_data: GCAAInspections = Field(default_factory=GCAAInspections)
    incident_data: GCAAIncidents = Field(default_factory=GCAAIncidents)


# ============================================================================
# Projects, tasks, calendar
# ============================================================================


class AgencyPortfolio(_Record):
    agency: str
    total: int = 0
    total_value: float = 0.0
    delayed: int = 0


class Portfolio(_Record):
    """Capital-project portfolio summary."""

    domain: Literal["portfolio"] = "portfolio"
    total_projects: int = 0
    total_value: float = 0.0
    in_progress: int = 0
    delayed: int = 0
    complete: int = 0
    not_started: int = 0
    agencies: list[AgencyPortfolio] = Field(default_factory=list)


class DelayedProject(_Record):
    domain: Literal["delayed_project"] = "delayed_project"
    project_id: str | None = None
    project_name: str | None = None
    sub_agency: str | None = None
    contract_value: float | None = None
    completion_percent: float | None = None
    project_end_date: date | None = None


class TaskItem(_Record):
    domain: Literal["task"] = "task"
    title: str = "Untitled"
    status: str | None = None
    due_date: date | None = None
    agency: str | None = None


class CalendarEvent(_Record):
    domain: Literal["calendar_event"] = "calendar_event"
    title: str = "Untitled"
    start_time: datetime | None = None
    end_time: datetime | None = None
    all_day: bool = False
    location: str | None = None


# ============================================================================
# Assembly
# ============================================================================


class SourceResult(_Record):
    """Outcome of one snapshot source: a value or the reason it is absent."""

    name: str
    label: str
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SnapshotData(_Record):
    """Typed view over every source's contribution (None when unavailable)."""

    gpl_daily: GPLDaily | None = None
    gpl_kpis: GPLKpis | None = None
    gwi_report: GWIReport | None = None
    gwi_insights: GWIInsight | None = None
    gwi_complaints: GWIComplaints | None = None
    cjia_report: CJIAReport | None = None
    gcaa_report: GCAAReport | None = None
    portfolio: Portfolio | None = None
    delayed_projects: list[DelayedProject] = Field(default_factory=list)
    tasks: list[TaskItem] | None = None
    calendar_today: list[CalendarEvent] | None = None
    calendar_week: list[CalendarEvent] | None = None

    @classmethod
    def from_results(cls, results: dict[str, SourceResult]) -> "SnapshotData":
        values = {name: r.value for name, r in results.items() if r.ok and r.value is not None}
        return cls(**{k: v for k, v in values.items() if k in cls.model_fields})
