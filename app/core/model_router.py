"""Question → model tier routing.

Ordered ``(pattern, query_type)`` rules evaluated first-match-wins. Deep
rules are evaluated before cheap rules, so a question that matches both
escalates. Anything unmatched is answered by the standard tier.
"""

import re
from dataclasses import dataclass
from enum import Enum


class ModelTier(str, Enum):
    """Cost/capability level used to answer a question, cheapest first."""

    CHEAP = "cheap"
    STANDARD = "standard"
    DEEP = "deep"

    @property
    def label(self) -> str:
        """Operator-facing tier name."""
        return {
            self.CHEAP: "Quick",
            self.STANDARD: "Standard",
            self.DEEP: "Deep",
        }[self]

    @property
    def rank(self) -> int:
        """Cost ordering (0 = cheapest)."""
        return {
            self.CHEAP: 0,
            self.STANDARD: 1,
            self.DEEP: 2,
        }[self]


@dataclass(frozen=True)
class ClassificationResult:
    """Routing decision for a single question."""

    tier: ModelTier
    query_type: str


_AGENCY = r"(gpl|gwi|cjia|gcaa)"
_WHAT_IS = r"^(what|what's|whats)\s+(is|are)\s+(the\s+)?"

# Escalation rules, checked before CHEAP_RULES.
DEEP_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"compare\s+(all\s+)?(agency|agencies)", re.I), "cross_agency_analysis"),
    (re.compile(r"across\s+(all\s+)?(agencies|sectors)", re.I), "cross_agency_analysis"),
    (re.compile(r"strategic|strategy|recommend|advise|prioriti[sz]e", re.I), "strategic_advice"),
    (
        re.compile(
            r"root\s+cause|why\s+(is|are|did|has|have).*\b(drop|decline|fall|increase|spike|surge)",
            re.I,
        ),
        "causal_analysis",
    ),
    (re.compile(r"forecast|predict|project(ion)?s?\s+(for|over|next)", re.I), "forecasting"),
    (re.compile(r"trend\s+analysis|long.?term", re.I), "trend_analysis"),
    (
        re.compile(r"what\s+should\s+(i|we|the dg)\s+(do|focus|prioriti[sz]e)", re.I),
        "strategic_advice",
    ),
    (re.compile(r"brief\s+(me|the dg)\s+on\s+(everything|all|the full)", re.I), "comprehensive_briefing"),
    (re.compile(r"comprehensive|in.?depth|detailed\s+analysis", re.I), "deep_analysis"),
    (re.compile(r"risk\s+(assessment|analysis|profile)", re.I), "risk_analysis"),
    (re.compile(r"scenario|what\s+if", re.I), "scenario_analysis"),
]

# Single-fact lookups a small model answers from minimal grounding.
CHEAP_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(_WHAT_IS + _AGENCY + r"\s+health", re.I), "health_lookup"),
    (re.compile(_WHAT_IS + r"health\s+score", re.I), "health_lookup"),
    (re.compile(r"health\s+score", re.I), "health_lookup"),
    (re.compile(r"^how\s+(many|much)\s+(projects?|tasks?|delayed|overdue)", re.I), "count_lookup"),
    (re.compile(_WHAT_IS + r"(current\s+)?(reserve|capacity|peak|demand)", re.I), "metric_lookup"),
    (re.compile(_WHAT_IS + r"(total\s+)?(portfolio|project)\s+(value|count)", re.I), "metric_lookup"),
    (re.compile(_WHAT_IS + r"collection\s+rate", re.I), "metric_lookup"),
    (re.compile(_WHAT_IS + r"suppressed\s+(demand|mw)", re.I), "metric_lookup"),
    (re.compile(_WHAT_IS + r"compliance\s+rate", re.I), "metric_lookup"),
    (re.compile(r"how\s+many\s+units?\s+(are\s+)?(online|available)", re.I), "metric_lookup"),
    (
        re.compile(r"^(show|list|give)\s+(me\s+)?(the\s+)?(overdue|delayed)\s+(tasks?|projects?)", re.I),
        "list_lookup",
    ),
    (re.compile(r"^(what|what's|whats)\s+(is|are)\s+(my\s+)?overdue\s+tasks?", re.I), "list_lookup"),
    (
        re.compile(_WHAT_IS + _AGENCY + r"\s+(revenue|profit|passengers|inspections)", re.I),
        "metric_lookup",
    ),
    (re.compile(_WHAT_IS + r"on.?time\s+performance", re.I), "metric_lookup"),
    (re.compile(_WHAT_IS + r"resolution\s+rate", re.I), "metric_lookup"),
    (re.compile(r"^when\s+(is|are)\s+(my\s+)?(next|today)", re.I), "schedule_lookup"),
    (
        re.compile(
            r"^(what|what's|whats)\s+(is|are)\s+(on\s+)?(my|the)\s+(calendar|schedule)\s+(today|this week)",
            re.I,
        ),
        "schedule_lookup",
    ),
]

DEFAULT_QUERY_TYPE = "general"


def classify_query(question: str) -> ClassificationResult:
    """
    Classify a question into a model tier.

    Args:
        question: Raw operator question

    Returns:
        ClassificationResult with tier and query type label
    """
    text = (question or "").strip()

    for pattern, query_type in DEEP_RULES:
        if pattern.search(text):
            return ClassificationResult(tier=ModelTier.DEEP, query_type=query_type)

    for pattern, query_type in CHEAP_RULES:
        if pattern.search(text):
            return ClassificationResult(tier=ModelTier.CHEAP, query_type=query_type)

    return ClassificationResult(tier=ModelTier.STANDARD, query_type=DEFAULT_QUERY_TYPE)


def cap_tier(tier: ModelTier, cap: ModelTier) -> ModelTier:
    """Lower ``tier`` to ``cap`` when it is more expensive; never raises it."""
    return tier if tier.rank <= cap.rank else cap
