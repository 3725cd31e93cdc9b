"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — DEPARTMENT PERFORMANCE ENGINE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Groups phases by owning department, computes performance metrics and ranks
departments against each other and the cohort average.

PERFORMANCE METRICS
═══════════════════

Let Φ_d be the phases owned by department d.

1. COMPLETION RATE (CR_d) and AVERAGE DELAY (AD_d)
   ────────────────────────────────────────────────
   Rollup definitions scoped to Φ_d.

2. EFFICIENCY (E_d)
   ────────────────

       E_d = clamp(0, 100, CR_d / max(AD_d, 1))

   Output per unit of friction, capped to a percentage-like range.

3. RISK LEVEL
   ──────────

       ρ_d = |{φ ∈ Φ_d : overdue(φ)}| / |Φ_d|

       ρ_d > 0.3  →  high
       ρ_d > 0.1  →  medium
       otherwise  →  low

4. PERFORMANCE TREND
   ─────────────────
   CR_recent = completion rate of phases that started within the last 30 days.

       CR_recent > CR_d          →  improving
       CR_recent < CR_d - 10     →  declining
       otherwise / no recent     →  stable

5. BUDGET (simulated)
   ──────────────────
   Each project's budget and actual cost are spread evenly over its phases:

       B_d = Σ_{φ ∈ Φ_d} budget(p(φ)) / |Φ(p(φ))|
       U_d = Σ_{φ ∈ Φ_d} actual(p(φ)) / |Φ(p(φ))|

RANKING
═══════

    order by CR_d desc, AD_d asc, department name asc

Rank is 1-based; Δ_d = CR_d - mean_d'(CR_d'). The ordering is total, so
repeated calls on an unchanged snapshot yield identical ranks.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .diagnostics import safe_divide
from .phase_model import PhaseStatus, RiskLevel
from .risk_budget_analyzer import RiskBucket, risk_bucket
from .rollup_engine import (
    PhaseFact,
    average_delay_days,
    clamp,
    completion_rate,
    risk_score,
)
from .validation import PreparedProject

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

# Delay-ratio thresholds (strict)
HIGH_DELAY_RATIO = 0.3
MEDIUM_DELAY_RATIO = 0.1

# Trend
DEFAULT_TREND_WINDOW_DAYS = 30
DECLINE_MARGIN_POINTS = 10.0

EFFICIENCY_MIN = 0.0
EFFICIENCY_MAX = 100.0


class PerformanceTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class DepartmentPerformance:
    """
    Performance profile of one department for a single analysis pass.
    """
    department: str

    # Core metrics
    completion_rate: float = 0.0
    average_delay_days: float = 0.0
    efficiency: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW

    # Counts
    total_phases: int = 0
    completed_phases: int = 0
    pending_phases: int = 0
    overdue_phases: int = 0

    # Budget (simulated apportionment)
    budget_allocated: float = 0.0
    budget_used: float = 0.0
    budget_utilization_pct: float = 0.0

    # Trend
    performance_trend: PerformanceTrend = PerformanceTrend.STABLE
    recent_completion_rate: Optional[float] = None
    recent_phases: int = 0

    # Team
    team_size: int = 0
    last_activity: Optional[date] = None

    # Risk score used by the forecaster
    risk_score: float = 0.0
    risk_bucket: RiskBucket = RiskBucket.LOW

    # Ranking
    rank: int = 0
    delta_vs_mean: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'department': self.department,
            'rank': self.rank,
            'completion_rate': round(self.completion_rate, 2),
            'delta_vs_mean': round(self.delta_vs_mean, 2),
            'average_delay_days': round(self.average_delay_days, 2),
            'efficiency': round(self.efficiency, 2),
            'risk_level': self.risk_level.value,
            'total_phases': self.total_phases,
            'completed_phases': self.completed_phases,
            'pending_phases': self.pending_phases,
            'overdue_phases': self.overdue_phases,
            'budget_allocated': round(self.budget_allocated, 2),
            'budget_used': round(self.budget_used, 2),
            'budget_utilization_pct': round(self.budget_utilization_pct, 1),
            'performance_trend': self.performance_trend.value,
            'recent_completion_rate': (
                round(self.recent_completion_rate, 2) if self.recent_completion_rate is not None else None
            ),
            'recent_phases': self.recent_phases,
            'team_size': self.team_size,
            'last_activity': self.last_activity.isoformat() if self.last_activity else None,
            'risk_score': round(self.risk_score, 1),
            'risk_bucket': self.risk_bucket.value,
        }


@dataclass
class DepartmentRanking:
    """Ranked department performances plus cohort statistics."""
    departments: List[DepartmentPerformance] = field(default_factory=list)
    mean_completion_rate: float = 0.0

    @property
    def ranking(self) -> List[str]:
        return [d.department for d in self.departments]

    def get(self, department: str) -> Optional[DepartmentPerformance]:
        return next((d for d in self.departments if d.department == department), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'departments': [d.to_dict() for d in self.departments],
            'ranking': self.ranking,
            'mean_completion_rate': round(self.mean_completion_rate, 2),
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CLASSIFICATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def efficiency_index(rate: float, delay: float) -> float:
    """Completion rate per day of average delay, clamped to [0, 100]."""
    return clamp(EFFICIENCY_MIN, EFFICIENCY_MAX, round(rate / max(delay, 1.0), 2))


def classify_department_risk(overdue: int, total: int) -> RiskLevel:
    """Classify by overdue ratio; thresholds are strict (exactly 0.3 is medium)."""
    ratio = safe_divide(overdue, total)
    if ratio > HIGH_DELAY_RATIO:
        return RiskLevel.HIGH
    elif ratio > MEDIUM_DELAY_RATIO:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def classify_performance_trend(recent_rate: Optional[float], overall_rate: float) -> PerformanceTrend:
    """Compare recent completion against the department's overall completion."""
    if recent_rate is None:
        return PerformanceTrend.STABLE
    if recent_rate > overall_rate:
        return PerformanceTrend.IMPROVING
    if recent_rate < overall_rate - DECLINE_MARGIN_POINTS:
        return PerformanceTrend.DECLINING
    return PerformanceTrend.STABLE


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PERFORMANCE COMPUTATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def apportion_budget(prepared: Sequence[PreparedProject]) -> List[Tuple[PhaseFact, float, float]]:
    """(fact, budget share, cost share) for every usable phase of every project."""
    entries = []
    for item in prepared:
        n = len(item.facts)
        if n == 0:
            continue
        budget_share = item.project.budget / n
        cost_share = item.project.actual_cost / n
        entries.extend((fact, budget_share, cost_share) for fact in item.facts)
    return entries


def _last_activity(facts: Sequence[PhaseFact], now: date) -> Optional[date]:
    dates = [
        d
        for f in facts
        for d in (f.phase.start_date, f.phase.end_date)
        if d is not None and d <= now
    ]
    return max(dates) if dates else None


def compute_department_metrics(
    department: str,
    entries: Sequence[Tuple[PhaseFact, float, float]],
    now: date,
    trend_window_days: int = DEFAULT_TREND_WINDOW_DAYS
) -> DepartmentPerformance:
    """
    Compute performance metrics for a single department.

    Args:
        department: Department name
        entries: (fact, budget share, cost share) for the department's phases
        now: Evaluation date
        trend_window_days: Window for "recent" phases in the trend

    Returns:
        DepartmentPerformance (unranked)
    """
    facts = [e[0] for e in entries]
    phases = [f.phase for f in facts]

    perf = DepartmentPerformance(department=department)

    perf.total_phases = len(phases)
    perf.completed_phases = sum(1 for p in phases if p.status == PhaseStatus.COMPLETED)
    perf.pending_phases = perf.total_phases - perf.completed_phases
    perf.overdue_phases = sum(1 for f in facts if f.is_overdue)

    perf.completion_rate = completion_rate(phases)
    perf.average_delay_days = average_delay_days(phases, now)
    perf.efficiency = efficiency_index(perf.completion_rate, perf.average_delay_days)
    perf.risk_level = classify_department_risk(perf.overdue_phases, perf.total_phases)

    # Trend over phases started within the window
    window_start = now - timedelta(days=trend_window_days)
    recent = [p for p in phases if p.start_date is not None and window_start <= p.start_date <= now]
    perf.recent_phases = len(recent)
    perf.recent_completion_rate = completion_rate(recent) if recent else None
    perf.performance_trend = classify_performance_trend(perf.recent_completion_rate, perf.completion_rate)

    perf.budget_allocated = sum(e[1] for e in entries)
    perf.budget_used = sum(e[2] for e in entries)
    perf.budget_utilization_pct = 100.0 * safe_divide(perf.budget_used, perf.budget_allocated)

    perf.team_size = len({p.responsible_role for p in phases if p.responsible_role})
    perf.last_activity = _last_activity(facts, now)

    perf.risk_score = risk_score(phases, now)
    perf.risk_bucket = risk_bucket(perf.risk_score)

    return perf


def rank_departments(performances: Sequence[DepartmentPerformance]) -> DepartmentRanking:
    """
    Rank departments (completion desc, delay asc, name asc).

    Returns new DepartmentPerformance objects carrying rank and delta vs mean.
    """
    if not performances:
        return DepartmentRanking()

    mean_rate = round(float(np.mean([p.completion_rate for p in performances])), 2)
    ordered = sorted(
        performances,
        key=lambda p: (-p.completion_rate, p.average_delay_days, p.department)
    )

    ranked = [
        replace(p, rank=i + 1, delta_vs_mean=round(p.completion_rate - mean_rate, 2))
        for i, p in enumerate(ordered)
    ]
    return DepartmentRanking(departments=ranked, mean_completion_rate=mean_rate)


def analyze_departments(
    prepared: Sequence[PreparedProject],
    now: date,
    trend_window_days: int = DEFAULT_TREND_WINDOW_DAYS
) -> DepartmentRanking:
    """
    Group usable phases of all prepared projects by department and rank them.
    """
    groups: Dict[str, List[Tuple[PhaseFact, float, float]]] = OrderedDict()
    for entry in apportion_budget(prepared):
        groups.setdefault(entry[0].department, []).append(entry)

    performances = [
        compute_department_metrics(dept, entries, now, trend_window_days)
        for dept, entries in groups.items()
    ]
    ranking = rank_departments(performances)

    logger.info(f"Ranked {len(ranking.departments)} departments (mean completion {ranking.mean_completion_rate:.1f}%)")
    return ranking


def get_department_summary_table(ranking: DepartmentRanking) -> pd.DataFrame:
    """
    Summary table of department performance, in rank order.

    Returns DataFrame suitable for display or export.
    """
    records = []
    for perf in ranking.departments:
        records.append({
            'Rank': perf.rank,
            'Department': perf.department,
            'Completion (%)': round(perf.completion_rate, 1),
            'Δ vs Mean': round(perf.delta_vs_mean, 1),
            'Avg Delay (days)': round(perf.average_delay_days, 1),
            'Efficiency': round(perf.efficiency, 1),
            'Risk': perf.risk_level.value,
            'Trend': perf.performance_trend.value,
            'Phases': perf.total_phases,
            'Overdue': perf.overdue_phases,
            'Team Size': perf.team_size,
        })

    return pd.DataFrame(records)
