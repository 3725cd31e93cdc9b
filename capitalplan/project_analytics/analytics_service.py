"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — PROJECT ANALYTICS SERVICE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Public entry points. Each call takes a full snapshot (Project objects or plain
host records), prepares it once and returns new result objects; nothing is
cached or mutated between calls.

    compute_project_metrics          portfolio rollup + per-project rollups
    compute_department_performance   ranked departments
    compute_forecast                 predicted completion of in-flight phases
    compute_trends                   monthly history for 30d / 90d / 1y
    assess_risk                      risk and budget buckets
    validate                         pre-flight structural checks only
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from ..engine_config import EngineConfig
from .department_performance_engine import (
    DepartmentPerformance,
    DepartmentRanking,
    analyze_departments,
    apportion_budget,
    get_department_summary_table,
)
from .diagnostics import Diagnostic
from .forecast_engine import ForecastEntry, forecast_phases
from .risk_budget_analyzer import BudgetBucket, RiskAssessment, RiskBucket, assess
from .rollup_engine import (
    ProjectRollup,
    average_delay_days,
    compliance_summary,
    completion_rate,
    compute_project_rollup,
    overdue_count,
    upcoming_deadline_count,
    urgent_count,
)
from .trend_engine import HistoricalTrends, Timeframe, compute_historical_trends
from .validation import AnalyticsSnapshot, ValidationResult, prepare_snapshot
from .validation import validate as run_validation

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ProjectMetrics:
    """
    Portfolio-level rollup of one snapshot.

    An empty snapshot yields zeroed metrics and empty lists.
    """
    as_of: date
    total_projects: int = 0
    total_phases: int = 0
    completed_phases: int = 0

    completion_rate: float = 0.0
    average_delay_days: float = 0.0
    overdue_count: int = 0
    urgent_count: int = 0
    upcoming_deadline_count: int = 0

    risk_score: float = 0.0
    risk_bucket: RiskBucket = RiskBucket.LOW
    budget_variance_percent: float = 0.0
    budget_bucket: BudgetBucket = BudgetBucket.UNDER_BUDGET
    total_budget: float = 0.0
    total_actual_cost: float = 0.0

    average_reported_progress: float = 0.0
    compliance: Dict[str, int] = field(default_factory=dict)
    projects: List[ProjectRollup] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'as_of': self.as_of.isoformat(),
            'total_projects': self.total_projects,
            'total_phases': self.total_phases,
            'completed_phases': self.completed_phases,
            'completion_rate': round(self.completion_rate, 2),
            'average_delay_days': round(self.average_delay_days, 2),
            'overdue_count': self.overdue_count,
            'urgent_count': self.urgent_count,
            'upcoming_deadline_count': self.upcoming_deadline_count,
            'risk_score': round(self.risk_score, 1),
            'risk_bucket': self.risk_bucket.value,
            'budget_variance_percent': round(self.budget_variance_percent, 2),
            'budget_bucket': self.budget_bucket.value,
            'total_budget': round(self.total_budget, 2),
            'total_actual_cost': round(self.total_actual_cost, 2),
            'average_reported_progress': round(self.average_reported_progress, 2),
            'compliance': dict(self.compliance),
            'projects': [p.to_dict() for p in self.projects],
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


@dataclass
class DepartmentPerformanceReport:
    """Ranked department performance for one snapshot."""
    as_of: date
    departments: List[DepartmentPerformance] = field(default_factory=list)
    mean_completion_rate: float = 0.0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def ranking(self) -> List[str]:
        return [d.department for d in self.departments]

    def get(self, department: str) -> Optional[DepartmentPerformance]:
        return next((d for d in self.departments if d.department == department), None)

    def summary_table(self) -> pd.DataFrame:
        return get_department_summary_table(
            DepartmentRanking(departments=self.departments, mean_completion_rate=self.mean_completion_rate)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'as_of': self.as_of.isoformat(),
            'departments': [d.to_dict() for d in self.departments],
            'ranking': self.ranking,
            'mean_completion_rate': round(self.mean_completion_rate, 2),
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


@dataclass
class ForecastReport:
    """Completion forecasts for in-flight phases."""
    as_of: date
    entries: List[ForecastEntry] = field(default_factory=list)
    cohort_average_delay_days: float = 0.0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def low_data_count(self) -> int:
        return sum(1 for e in self.entries if e.low_historical_data)

    def get(self, phase_id: str, project_id: Optional[str] = None) -> Optional[ForecastEntry]:
        return next(
            (
                e for e in self.entries
                if e.phase_id == phase_id and (project_id is None or e.project_id == project_id)
            ),
            None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'as_of': self.as_of.isoformat(),
            'entries': [e.to_dict() for e in self.entries],
            'cohort_average_delay_days': round(self.cohort_average_delay_days, 2),
            'low_data_count': self.low_data_count,
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


@dataclass
class TrendReport:
    """Monthly trends plus the diagnostics of the snapshot they came from."""
    trends: HistoricalTrends
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self.trends.to_dict()
        data['diagnostics'] = [d.to_dict() for d in self.diagnostics]
        return data


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PROJECT METRICS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def _project_metrics(snapshot: AnalyticsSnapshot) -> ProjectMetrics:
    now = snapshot.as_of
    config = snapshot.config
    phases = snapshot.phases
    projects = snapshot.projects

    metrics = ProjectMetrics(as_of=now, diagnostics=list(snapshot.diagnostics))
    metrics.total_projects = len(projects)
    metrics.total_phases = len(phases)
    metrics.completed_phases = sum(1 for p in phases if p.is_completed)

    metrics.completion_rate = completion_rate(phases)
    metrics.average_delay_days = average_delay_days(phases, now)
    metrics.overdue_count = overdue_count(phases, now)
    metrics.urgent_count = urgent_count(phases)
    metrics.upcoming_deadline_count = upcoming_deadline_count(phases, now, config.upcoming_window_days)

    assessment = assess(projects, phases, now)
    metrics.risk_score = assessment.risk_score
    metrics.risk_bucket = assessment.risk_bucket
    metrics.budget_variance_percent = assessment.budget_variance_percent
    metrics.budget_bucket = assessment.budget_bucket
    metrics.total_budget = sum(p.budget for p in projects)
    metrics.total_actual_cost = sum(p.actual_cost for p in projects)

    if projects:
        metrics.average_reported_progress = round(float(np.mean([p.total_progress for p in projects])), 2)

    metrics.compliance = compliance_summary(phases, now, config.compliance_due_soon_days)
    metrics.projects = [
        compute_project_rollup(item.project, item.phases, now, config.upcoming_window_days)
        for item in snapshot.prepared
    ]

    return metrics


def compute_project_metrics(
    projects: Iterable[Any],
    now: Optional[date] = None,
    config: Optional[EngineConfig] = None
) -> ProjectMetrics:
    """
    Portfolio metrics over the selected, valid phases of all acyclic projects.

    Args:
        projects: Project objects or host records
        now: Evaluation date (defaults to today)
        config: Per-call config (defaults to EngineSettings)

    Returns:
        ProjectMetrics
    """
    snapshot = prepare_snapshot(projects, now, config)
    metrics = _project_metrics(snapshot)
    logger.info(
        f"Project metrics: {metrics.total_projects} projects, {metrics.total_phases} phases, "
        f"completion {metrics.completion_rate:.2f}%, risk {metrics.risk_score:.1f}"
    )
    return metrics


def assess_risk(
    projects: Iterable[Any],
    now: Optional[date] = None,
    config: Optional[EngineConfig] = None
) -> RiskAssessment:
    """Risk score and budget variance with their buckets."""
    snapshot = prepare_snapshot(projects, now, config)
    return assess(snapshot.projects, snapshot.phases, snapshot.as_of)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DEPARTMENTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def compute_department_performance(
    projects: Iterable[Any],
    now: Optional[date] = None,
    config: Optional[EngineConfig] = None
) -> DepartmentPerformanceReport:
    """
    Department performance, ranked by completion desc, delay asc, name asc.
    """
    snapshot = prepare_snapshot(projects, now, config)
    ranking = analyze_departments(snapshot.prepared, snapshot.as_of, snapshot.config.trend_window_days)

    return DepartmentPerformanceReport(
        as_of=snapshot.as_of,
        departments=ranking.departments,
        mean_completion_rate=ranking.mean_completion_rate,
        diagnostics=list(snapshot.diagnostics),
    )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# FORECAST
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def compute_forecast(
    projects: Iterable[Any],
    now: Optional[date] = None,
    config: Optional[EngineConfig] = None
) -> ForecastReport:
    """
    Predicted completion dates for not_started / in_progress phases.

    Department delay statistics come from the same snapshot; the cohort-wide
    average delay is the fallback for departments with thin history.
    """
    snapshot = prepare_snapshot(projects, now, config)
    ranking = analyze_departments(snapshot.prepared, snapshot.as_of, snapshot.config.trend_window_days)
    cohort_delay = average_delay_days(snapshot.phases, snapshot.as_of)

    entries, diagnostics = forecast_phases(
        snapshot.prepared,
        ranking,
        cohort_delay,
        min_completed_history=snapshot.config.min_completed_history,
    )

    for diagnostic in diagnostics:
        logger.warning(diagnostic.message)

    return ForecastReport(
        as_of=snapshot.as_of,
        entries=entries,
        cohort_average_delay_days=cohort_delay,
        diagnostics=list(snapshot.diagnostics) + diagnostics,
    )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# TRENDS & VALIDATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def compute_trends(
    projects: Iterable[Any],
    timeframe: Union[Timeframe, str] = Timeframe.LAST_90_DAYS,
    now: Optional[date] = None,
    config: Optional[EngineConfig] = None
) -> TrendReport:
    """
    Monthly completion, risk and budget utilization history (default window 90d).

    Raises:
        ValueError: if timeframe is not one of 30d, 90d, 1y
    """
    timeframe = Timeframe(timeframe)
    snapshot = prepare_snapshot(projects, now, config)
    trends = compute_historical_trends(
        snapshot.phases, timeframe, snapshot.as_of, allocations=apportion_budget(snapshot.prepared)
    )
    return TrendReport(trends=trends, diagnostics=list(snapshot.diagnostics))


def validate(projects: Iterable[Any]) -> ValidationResult:
    """Pre-flight check: dependency cycles and required fields, no metrics."""
    result = run_validation(projects)
    logger.info(
        f"Validated {result.projects_checked} projects / {result.phases_checked} phases: "
        f"{len(result.errors)} errors, {len(result.warnings)} warnings"
    )
    return result
