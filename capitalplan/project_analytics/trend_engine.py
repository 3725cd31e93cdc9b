"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — HISTORICAL TRENDS
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Month-by-month completion, risk and budget history for the dashboard timeframe
selector (30d / 90d / 1y).

Phases are bucketed by the calendar month of their end_date. For month m with
due set Φ_m and evaluation date t_m = min(last day of m, now):

    phases_due        |Φ_m|
    completed         |{φ ∈ Φ_m : status(φ) = completed}|
    completion_rate   CR(Φ_m)
    overdue_count     |{φ ∈ Φ_m : overdue(φ) as of t_m}|
    risk_score        RS(Φ_m) as of t_m

Budget utilization is cumulative. With the apportioned budget b(φ) and cost
c(φ) of each usable phase (see department_performance_engine):

    budget_utilization   100 · Σ_{end(φ) ≤ t_m} c(φ) / Σ_φ b(φ)       (0 if Σ b = 0)

Months without due phases are reported with zeros, except budget utilization,
which carries the running total.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .diagnostics import safe_divide
from .phase_model import Phase
from .rollup_engine import PhaseFact, completion_rate, overdue_count, risk_score

logger = logging.getLogger(__name__)


class Timeframe(str, Enum):
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    LAST_YEAR = "1y"

    @property
    def months(self) -> int:
        return {"30d": 1, "90d": 3, "1y": 12}[self.value]


@dataclass
class TrendPoint:
    month: str
    phases_due: int = 0
    completed: int = 0
    completion_rate: float = 0.0
    overdue_count: int = 0
    risk_score: float = 0.0
    budget_utilization: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'phases_due': self.phases_due,
            'completed': self.completed,
            'completion_rate': round(self.completion_rate, 2),
            'overdue_count': self.overdue_count,
            'risk_score': round(self.risk_score, 1),
            'budget_utilization': round(self.budget_utilization, 1),
        }


@dataclass
class HistoricalTrends:
    """Monthly trend series, oldest month first."""
    timeframe: Timeframe
    as_of: date
    points: List[TrendPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timeframe': self.timeframe.value,
            'as_of': self.as_of.isoformat(),
            'points': [p.to_dict() for p in self.points],
        }

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([p.to_dict() for p in self.points])


def _budget_utilization(
    allocations: Sequence[Tuple[PhaseFact, float, float]],
    as_of: date
) -> float:
    total_budget = sum(budget for _, budget, _ in allocations)
    spent = sum(
        cost for fact, _, cost in allocations
        if fact.phase.end_date is not None and fact.phase.end_date <= as_of
    )
    return 100.0 * safe_divide(spent, total_budget)


def compute_historical_trends(
    phases: Sequence[Phase],
    timeframe: Timeframe,
    now: date,
    allocations: Optional[Sequence[Tuple[PhaseFact, float, float]]] = None
) -> HistoricalTrends:
    """
    Monthly trend points over the timeframe window ending with the month of `now`.

    Args:
        phases: Selected, valid phases
        timeframe: Window selector
        now: Evaluation date
        allocations: (fact, budget share, cost share) per usable phase; without
            them budget utilization stays 0

    Returns:
        HistoricalTrends with exactly timeframe.months points
    """
    allocations = allocations or []
    timeframe = Timeframe(timeframe)
    months = pd.period_range(end=pd.Timestamp(now).to_period('M'), periods=timeframe.months, freq='M')

    by_month: Dict[pd.Period, List[Phase]] = {m: [] for m in months}
    for phase in phases:
        if phase.end_date is None:
            continue
        month = pd.Timestamp(phase.end_date).to_period('M')
        if month in by_month:
            by_month[month].append(phase)

    result = HistoricalTrends(timeframe=timeframe, as_of=now)
    for month in months:
        due = by_month[month]
        as_of = min(month.end_time.date(), now)
        result.points.append(TrendPoint(
            month=str(month),
            phases_due=len(due),
            completed=sum(1 for p in due if p.is_completed),
            completion_rate=completion_rate(due),
            overdue_count=overdue_count(due, as_of),
            risk_score=risk_score(due, as_of),
            budget_utilization=_budget_utilization(allocations, as_of),
        ))

    logger.debug(f"Trends {timeframe.value}: {sum(p.phases_due for p in result.points)} phases over {len(months)} months")
    return result
