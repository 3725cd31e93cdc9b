"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — PROJECT ANALYTICS MODULE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Analytics over capital projects tracked as trees of phases.

A PROJECT is an ordered list of phases with a budget and an actual cost. A
PHASE may have sub-phases and may depend on other phases of its project.

This module provides:
1. Phase tree model and dependency cycle detection
2. Rollup statistics (completion, delay, risk score, budget variance)
3. Department performance ranking
4. Completion forecasts for in-flight phases
5. Monthly historical trends

ARCHITECTURE
════════════

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                        ANALYTICS SERVICE                                 │
    │   metrics · departments · forecast · trends · risk · validate            │
    └────────────────────────────────┬────────────────────────────────────────┘
                                     │
    ┌──────────────┐  ┌──────────────▼─┐  ┌──────────────┐  ┌──────────────┐
    │ risk_budget  │  │ department_    │  │ forecast_    │  │ trend_engine │
    │ _analyzer    │  │ performance    │  │ engine       │  │              │
    └──────┬───────┘  └───────┬────────┘  └──────┬───────┘  └──────┬───────┘
           └──────────────────┴────────┬─────────┴─────────────────┘
                                       │
    ┌──────────────────────────────────▼──────────────────────────────────────┐
    │  validation (map: tree, cycles, selection, required fields; reduce)      │
    │  rollup_engine (per-phase facts, aggregates)                             │
    │  phase_model (Phase, Project, walk, flatten, cycle detection)            │
    └─────────────────────────────────────────────────────────────────────────┘
"""

from .phase_model import (
    Phase,
    Project,
    ComplianceCheckpoint,
    PhaseStatus,
    ProjectStatus,
    RiskLevel,
    ProgressSource,
    walk,
    flatten,
    select_phases,
    find_dependency_cycle,
    check_dependency_cycles,
)
from .diagnostics import (
    Diagnostic,
    DiagnosticKind,
    Severity,
    ProjectAnalyticsError,
    CyclicDependencyError,
    MissingRequiredFieldError,
    LowHistoricalDataWarning,
    safe_divide,
)
from .rollup_engine import (
    ProjectRollup,
    is_overdue,
    completion_rate,
    average_delay_days,
    budget_variance_percent,
    risk_score,
    upcoming_deadline_count,
    compliance_summary,
)
from .risk_budget_analyzer import (
    RiskAssessment,
    RiskBucket,
    BudgetBucket,
    risk_bucket,
    budget_bucket,
    assess,
)
from .department_performance_engine import (
    DepartmentPerformance,
    DepartmentRanking,
    PerformanceTrend,
    rank_departments,
    analyze_departments,
    apportion_budget,
)
from .forecast_engine import (
    ForecastEntry,
    RiskFactor,
    dependency_chain_depths,
)
from .trend_engine import (
    Timeframe,
    TrendPoint,
    HistoricalTrends,
)
from .validation import ValidationResult
from .analytics_service import (
    ProjectMetrics,
    DepartmentPerformanceReport,
    ForecastReport,
    TrendReport,
    compute_project_metrics,
    compute_department_performance,
    compute_forecast,
    compute_trends,
    assess_risk,
    validate,
)

__all__ = [
    # Model
    "Phase",
    "Project",
    "ComplianceCheckpoint",
    "PhaseStatus",
    "ProjectStatus",
    "RiskLevel",
    "ProgressSource",
    "walk",
    "flatten",
    "select_phases",
    "find_dependency_cycle",
    "check_dependency_cycles",
    # Diagnostics
    "Diagnostic",
    "DiagnosticKind",
    "Severity",
    "ProjectAnalyticsError",
    "CyclicDependencyError",
    "MissingRequiredFieldError",
    "LowHistoricalDataWarning",
    "safe_divide",
    # Rollup
    "ProjectRollup",
    "is_overdue",
    "completion_rate",
    "average_delay_days",
    "budget_variance_percent",
    "risk_score",
    "upcoming_deadline_count",
    "compliance_summary",
    # Risk & budget
    "RiskAssessment",
    "RiskBucket",
    "BudgetBucket",
    "risk_bucket",
    "budget_bucket",
    "assess",
    # Departments
    "DepartmentPerformance",
    "DepartmentRanking",
    "PerformanceTrend",
    "rank_departments",
    "analyze_departments",
    "apportion_budget",
    # Forecast
    "ForecastEntry",
    "RiskFactor",
    "dependency_chain_depths",
    # Trends
    "Timeframe",
    "TrendPoint",
    "HistoricalTrends",
    # Service
    "ValidationResult",
    "ProjectMetrics",
    "DepartmentPerformanceReport",
    "ForecastReport",
    "TrendReport",
    "compute_project_metrics",
    "compute_department_performance",
    "compute_forecast",
    "compute_trends",
    "assess_risk",
    "validate",
]
